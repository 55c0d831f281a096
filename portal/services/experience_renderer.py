"""
Experience Renderer

Turns a validated Experience JSON document into a view tree the client
can draw without further interpretation, and runs flow form submissions
through the tool registry.
"""
from typing import Any, Callable, Dict, List, Optional
from pydantic import ValidationError

from portal.schemas.experience import (
    ExperienceDocument,
    CardBlock,
    CardsListBlock,
    TableBlock,
    FlowBlock,
    HeroBlock,
    ContentBlock,
    CtaBlock,
    StepsBlock,
    CardCta,
)
from portal.core.exceptions import InvalidExperienceError, InvalidInputError
from portal.services.tools import ToolContext, execute_tool
from portal.utils.logging import get_logger

logger = get_logger(__name__)

DEFAULT_GAP = "md"
FORM_REF_PREFIX = "$form."


def format_errors(exc: ValidationError) -> List[Dict[str, str]]:
    return [
        {
            "path": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
        }
        for error in exc.errors()
    ]


def validate_experience(doc: Dict[str, Any]) -> ExperienceDocument:
    """Parse a raw document; raises InvalidExperienceError with {path, message} items."""
    try:
        return ExperienceDocument.model_validate(doc)
    except ValidationError as e:
        errors = format_errors(e)
        logger.info(f"Experience validation failed with {len(errors)} error(s)")
        raise InvalidExperienceError(errors)


def grid_columns(block_count: int) -> int:
    if block_count <= 1:
        return 1
    if block_count == 2:
        return 2
    return 3


# ============================================================================
# BLOCK RENDERERS
# ============================================================================

def _actions(actions) -> List[Dict[str, Any]]:
    return [action.model_dump() for action in actions or []]


def _cta_href(cta: CardCta) -> Optional[str]:
    if cta.href is not None:
        return str(cta.href)
    context = cta.context or {}
    if cta.type == "email" and context.get("email"):
        return f"mailto:{context['email']}"
    if cta.type == "phone" and context.get("phone"):
        return f"tel:{context['phone']}"
    return None


def render_card(block: CardBlock) -> Dict[str, Any]:
    return {
        "headline": block.headline,
        "body": block.body,
        "actions": _actions(block.actions),
    }


def render_cards_list(block: CardsListBlock) -> Dict[str, Any]:
    items = []
    for item in block.items:
        items.append({
            "title": item.title,
            "subtitle": item.subtitle,
            "body": item.body,
            "fullDescription": item.full_description or item.body,
            "itemType": item.item_type,
            "icon": item.icon,
            "color": item.color,
            "ctas": [
                {
                    "label": cta.label,
                    "type": cta.type,
                    "href": _cta_href(cta),
                    "action_id": cta.action_id,
                    "context": cta.context or {},
                }
                for cta in item.ctas or []
            ],
            "meta": item.meta or {},
        })
    return {"title": block.title, "items": items}


def render_table(block: TableBlock) -> Dict[str, Any]:
    return {
        "title": block.title,
        "columns": list(block.columns),
        "rows": [dict(zip(block.columns, row)) for row in block.rows],
    }


def render_flow(block: FlowBlock) -> Dict[str, Any]:
    if not block.steps:
        return {"id": block.id, "state": "empty", "step_count": 0, "current_step": None}

    step = block.steps[0]
    if not step.form.fields:
        return {"id": block.id, "state": "invalid", "step_count": len(block.steps), "current_step": None}

    return {
        "id": block.id,
        "state": "ready",
        "step_count": len(block.steps),
        "current_step_index": 0,
        "current_step": {
            "id": step.id,
            "title": step.title,
            "fields": [field.model_dump() for field in step.form.fields],
            "tool": step.form.on_submit.tool,
        },
    }


def render_hero(block: HeroBlock) -> Dict[str, Any]:
    return {
        "headline": block.headline,
        "subheadline": block.subheadline,
        "image_url": block.image_url,
        "actions": _actions(block.actions),
    }


def render_content(block: ContentBlock) -> Dict[str, Any]:
    return {"markdown": block.markdown}


def render_cta(block: CtaBlock) -> Dict[str, Any]:
    return {
        "headline": block.headline,
        "description": block.description,
        "actions": _actions(block.actions),
    }


def render_steps(block: StepsBlock) -> Dict[str, Any]:
    return {
        "title": block.title,
        "steps": [step.model_dump() for step in block.steps],
    }


BLOCK_RENDERERS: Dict[str, Callable[[Any], Dict[str, Any]]] = {
    "card": render_card,
    "cards.list": render_cards_list,
    "table": render_table,
    "flow": render_flow,
    "hero": render_hero,
    "content": render_content,
    "cta": render_cta,
    "steps": render_steps,
}


def render_experience(doc: ExperienceDocument) -> Dict[str, Any]:
    """Render a validated document into {layout, theme, blocks}."""
    layout = {
        "type": doc.layout.type,
        "gap": doc.layout.gap or DEFAULT_GAP,
    }
    if doc.layout.type == "grid":
        layout["columns"] = grid_columns(len(doc.blocks))

    blocks = []
    for index, block in enumerate(doc.blocks):
        blocks.append({
            "key": f"{block.type}-{index}",
            "type": block.type,
            "props": BLOCK_RENDERERS[block.type](block),
        })

    return {
        "layout": layout,
        "theme": doc.theme or {},
        "blocks": blocks,
    }


# ============================================================================
# FLOW SUBMISSION
# ============================================================================

def map_params(params_mapping: Dict[str, Any], form_data: Dict[str, Any]) -> Dict[str, Any]:
    """Replace "$form.<field>" values with the submitted form value."""
    params = {}
    for key, value in params_mapping.items():
        if isinstance(value, str) and value.startswith(FORM_REF_PREFIX):
            params[key] = form_data.get(value[len(FORM_REF_PREFIX):])
        else:
            params[key] = value
    return params


def _is_missing(value: Any) -> bool:
    return value is None or value == "" or value == []


def find_flow(doc: ExperienceDocument, flow_id: str) -> FlowBlock:
    for block in doc.blocks:
        if isinstance(block, FlowBlock) and block.id == flow_id:
            return block
    raise InvalidInputError(f"Flow not found: {flow_id}")


def submit_flow_step(
    doc: ExperienceDocument,
    flow_id: str,
    step_index: int,
    form_data: Dict[str, Any],
    ctx: ToolContext,
) -> Dict[str, Any]:
    """
    Validate one flow step's form, run its tool and work out the next step.

    The step only advances on success and only when a later step exists.
    """
    flow = find_flow(doc, flow_id)
    if step_index < 0 or step_index >= len(flow.steps):
        raise InvalidInputError(f"Step {step_index} out of range for flow {flow_id}")

    step = flow.steps[step_index]
    missing = [
        field.id for field in step.form.fields
        if field.required and _is_missing(form_data.get(field.id))
    ]
    if missing:
        return {
            "ok": False,
            "error": {
                "code": "VALIDATION_FAILED",
                "message": f"Missing required fields: {', '.join(missing)}",
                "fields": missing,
            },
            "next_step": step_index,
        }

    on_submit = step.form.on_submit
    params = map_params(on_submit.params_mapping, form_data)
    outcome = execute_tool(on_submit.tool, params, ctx)

    if outcome["ok"]:
        has_next = step_index + 1 < len(flow.steps)
        logger.info(f"Flow {flow_id} step {step.id} submitted via {on_submit.tool}")
        return {
            "ok": True,
            "result": outcome["data"],
            "next_step": step_index + 1 if has_next else step_index,
            "actions": on_submit.on_success or [],
        }

    return {
        "ok": False,
        "error": outcome["error"],
        "next_step": step_index,
        "actions": on_submit.on_error or [],
    }
