"""Message template loading and rendering."""

from pathlib import Path

import yaml


_templates: dict | None = None


def load_templates() -> dict:
    """
    Load message templates from YAML file.

    Caches templates after first load.
    """
    global _templates
    if _templates is not None:
        return _templates

    yaml_path = Path(__file__).parent / "messages.yaml"
    with open(yaml_path) as f:
        _templates = yaml.safe_load(f)

    return _templates


def render_message(template: str, context: dict) -> str:
    """
    Render a message template with context variables.

    Raises:
        KeyError: If a required variable is missing from context
    """
    return template.format(**context).strip()


def get_audience(payload: dict) -> str:
    """Pick the template audience for a payload: trainer, waitlist or member."""
    if payload.get("role") == "TRAINER":
        return "trainer"
    if payload.get("is_waitlist"):
        return "waitlist"
    return "member"


def get_message(notification_type: str, field: str, context: dict) -> str:
    """
    Get and render one field of a notification.

    Falls back to the member wording when a type has no template for the
    requested audience (e.g. waitlist wording for a warning).

    Args:
        notification_type: e.g. "SCHEDULE_CANCELLED", "CLASS_WARNING"
        field: e.g. "waitlist_title", "trainer_message"
        context: Variables to substitute
    """
    templates = load_templates()[notification_type]
    template = templates.get(field)
    if template is None:
        _, _, suffix = field.partition("_")
        template = templates[f"member_{suffix}"]
    return render_message(template, context)
