"""
Experience Schemas

Pydantic models for Experience JSON documents: a layout plus a list of
typed blocks. `blocks` is a tagged union on the block `type`.
"""
from pydantic import AnyUrl, BaseModel, Field, model_validator
from typing import Annotated, Any, Dict, List, Literal, Optional, Union
from datetime import datetime


class Action(BaseModel):
    label: str
    action_id: str


class CardBlock(BaseModel):
    type: Literal["card"]
    headline: str
    body: str
    actions: Optional[List[Action]] = None


class CardCta(BaseModel):
    label: str
    href: Optional[AnyUrl] = None
    type: Literal["email", "phone", "web", "generic"] = "generic"
    action_id: Optional[str] = None
    context: Optional[Dict[str, Any]] = None


class CardItem(BaseModel):
    title: str
    subtitle: Optional[str] = None
    body: Optional[str] = None
    full_description: Optional[str] = Field(None, alias="fullDescription")
    item_type: Literal["person", "service", "company", "generic"] = Field("generic", alias="itemType")
    icon: Optional[str] = None
    color: Optional[str] = None
    ctas: Optional[List[CardCta]] = Field(None, alias="cta")
    meta: Optional[Dict[str, str]] = None

    class Config:
        populate_by_name = True


class CardsListBlock(BaseModel):
    type: Literal["cards.list"]
    title: Optional[str] = None
    items: List[CardItem]


class TableBlock(BaseModel):
    type: Literal["table"]
    title: Optional[str] = None
    columns: List[str]
    rows: List[List[Any]]

    @model_validator(mode="after")
    def rows_match_columns(self):
        width = len(self.columns)
        for index, row in enumerate(self.rows):
            if len(row) != width:
                raise ValueError(
                    f"Row {index} has {len(row)} cells, expected {width}"
                )
        return self


class FormField(BaseModel):
    id: str
    label: str
    type: Literal["text", "number", "select", "multiselect", "textarea"]
    required: bool = False
    options: Optional[List[str]] = None


class OnSubmit(BaseModel):
    type: Literal["tool_call"]
    tool: str
    params_schema: Dict[str, Any] = Field(default_factory=dict)
    params_mapping: Dict[str, Any] = Field(default_factory=dict)
    on_success: Optional[List[Dict[str, Any]]] = None
    on_error: Optional[List[Dict[str, Any]]] = None


class FlowForm(BaseModel):
    fields: List[FormField]
    on_submit: OnSubmit


class FlowStep(BaseModel):
    id: str
    title: str
    form: FlowForm


class FlowBlock(BaseModel):
    type: Literal["flow"]
    id: str
    steps: List[FlowStep]


class HeroBlock(BaseModel):
    type: Literal["hero"]
    headline: str
    subheadline: Optional[str] = None
    image_url: Optional[str] = None
    actions: Optional[List[Action]] = None


class ContentBlock(BaseModel):
    type: Literal["content"]
    markdown: str


class CtaAction(Action):
    variant: Literal["default", "outline", "ghost"] = "default"


class CtaBlock(BaseModel):
    type: Literal["cta"]
    headline: str
    description: Optional[str] = None
    actions: List[CtaAction]


class StepItem(BaseModel):
    title: str
    description: Optional[str] = None
    icon: Optional[str] = None


class StepsBlock(BaseModel):
    type: Literal["steps"]
    title: Optional[str] = None
    steps: List[StepItem]


Block = Annotated[
    Union[
        CardBlock,
        CardsListBlock,
        TableBlock,
        FlowBlock,
        HeroBlock,
        ContentBlock,
        CtaBlock,
        StepsBlock,
    ],
    Field(discriminator="type"),
]


class Layout(BaseModel):
    type: Literal["stack", "grid"]
    gap: Optional[Literal["sm", "md", "lg"]] = None


class ExperienceDocument(BaseModel):
    """Experience JSON, version 1.0."""
    version: Literal["1.0"]
    layout: Layout
    theme: Optional[Dict[str, str]] = None
    blocks: List[Block]


# ============================================================================
# API MODELS
# ============================================================================

class ExperienceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=255)
    app_key: Optional[str] = Field(None, max_length=100)
    document: Dict[str, Any]


class ExperienceResponse(BaseModel):
    id: str
    tenant_id: str
    app_key: Optional[str]
    name: str
    document: Dict[str, Any]
    created_by: Optional[str]
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ValidationErrorItem(BaseModel):
    path: str
    message: str


class ValidateResponse(BaseModel):
    valid: bool
    errors: List[ValidationErrorItem] = []


class FlowSubmitRequest(BaseModel):
    step_index: int = Field(0, ge=0)
    form_data: Dict[str, Any] = Field(default_factory=dict)


class ToolCallFunction(BaseModel):
    name: str
    arguments: str = "{}"


class ToolCall(BaseModel):
    id: str
    function: ToolCallFunction


class ToolBatchRequest(BaseModel):
    calls: List[ToolCall]
