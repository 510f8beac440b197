"""
Email template rendering.

Maps a named template plus a flat variable map to a (subject, html, text)
triple. Rendering is pure: no I/O, no clock, no shared mutable state after
construction, so a single renderer can serve concurrent sends.

Variables referenced by a template but absent from the map render as empty
strings. Callers that need completeness validate upstream; the quote flow
does that through QuoteEmailVariables.

Money arrives pre-formatted. The renderer never sees minor units.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from jinja2 import ChainableUndefined, Environment

from quote_delivery.exceptions import TemplateNotFound

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EmailTemplate:
    """Jinja2 sources for one named email."""
    name: str
    subject: str
    html: str
    text: str


@dataclass(frozen=True)
class RenderedEmail:
    subject: str
    html: str
    text: str


# ---------------------------------------------------------------------------
# Built-in templates
# ---------------------------------------------------------------------------

_QUOTE_SUBJECT = "Your Quote {{ quote_number }} - {{ business_name }}"

_QUOTE_HTML = """<!DOCTYPE html>
<html lang="en">
<head>
  <meta charset="UTF-8">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <title>Your Quote from {{ business_name }}</title>
</head>
<body style="font-family: Arial, sans-serif; background-color: #f8f9fa; margin: 0; padding: 0; color: #333;">
  <div style="max-width: 640px; margin: 30px auto; background: #fff; border-radius: 12px; overflow: hidden;">
    <div style="background: #e63946; color: #fff; padding: 30px 20px; text-align: center;">
      <h1 style="margin: 0; font-size: 28px;">{{ business_name }}</h1>
      <p style="margin: 8px 0 0 0;">Quote {{ quote_number }}</p>
    </div>
    <div style="padding: 32px 28px;">
      <p style="font-size: 18px;">Hi {{ customer_name }},</p>
      <p>{{ message }}</p>
      <table style="width: 100%; border-collapse: collapse; margin: 20px 0;">
        {% if service_type %}<tr><td style="padding: 6px 0;"><strong>Service</strong></td><td style="text-align: right;">{{ service_type }}</td></tr>{% endif %}
        {% if event_date %}<tr><td style="padding: 6px 0;"><strong>Event date</strong></td><td style="text-align: right;">{{ event_date }}</td></tr>{% endif %}
        {% if event_location %}<tr><td style="padding: 6px 0;"><strong>Location</strong></td><td style="text-align: right;">{{ event_location }}</td></tr>{% endif %}
        <tr><td style="padding: 6px 0;"><strong>Valid until</strong></td><td style="text-align: right;">{{ valid_until }}</td></tr>
      </table>
      {% if line_items %}
      <table style="width: 100%; border-collapse: collapse; margin: 20px 0; font-size: 14px;">
        <thead>
          <tr style="background: #f1f3f5;">
            <th style="text-align: left; padding: 8px;">Item</th>
            <th style="text-align: right; padding: 8px;">Qty</th>
            <th style="text-align: right; padding: 8px;">Unit price</th>
            <th style="text-align: right; padding: 8px;">Total</th>
          </tr>
        </thead>
        <tbody>
          {% for item in line_items %}
          <tr style="border-bottom: 1px solid #e9ecef;">
            <td style="padding: 8px;">{{ item.description }}</td>
            <td style="text-align: right; padding: 8px;">{{ item.quantity }}</td>
            <td style="text-align: right; padding: 8px;">{{ item.unit_price }}</td>
            <td style="text-align: right; padding: 8px;">{{ item.line_total }}</td>
          </tr>
          {% endfor %}
        </tbody>
      </table>
      {% endif %}
      <div style="background: #f8f9fa; padding: 20px; border-left: 4px solid #e63946; margin: 20px 0;">
        <p style="margin: 0; font-size: 18px;"><strong>Total: {{ total }}</strong></p>
        {% if deposit %}<p style="margin: 8px 0 0 0;">Deposit due now: <strong>{{ deposit }}</strong></p>{% endif %}
      </div>
      {% if checkout_url %}
      <p style="text-align: center; margin: 30px 0;">
        <a href="{{ checkout_url }}" style="background: #e63946; color: #fff; padding: 14px 28px; border-radius: 6px; text-decoration: none; font-weight: bold;">Pay {{ amount_due }} securely</a>
      </p>
      {% else %}
      <p style="text-align: center; margin: 30px 0;">
        {{ payment_instructions }} <a href="{{ payment_url }}">{{ payment_url }}</a>
      </p>
      {% endif %}
      {% if attachment_note %}<p>{{ attachment_note }}</p>{% endif %}
      {% if terms %}<p style="font-size: 12px; color: #666;"><strong>Terms:</strong> {{ terms }}</p>{% endif %}
      <p>Cheers,<br><strong>The {{ business_name }} Team</strong></p>
    </div>
    <div style="background: #333; color: #fff; padding: 12px; text-align: center; font-size: 12px;">
      <a href="{{ unsubscribe_url }}" style="color: #ccc;">Unsubscribe</a>
    </div>
  </div>
</body>
</html>
"""

_QUOTE_TEXT = """Hi {{ customer_name }},

{{ message }}

Quote: {{ quote_number }}
{% if service_type %}Service: {{ service_type }}
{% endif %}{% if event_date %}Event date: {{ event_date }}
{% endif %}{% if event_location %}Location: {{ event_location }}
{% endif %}Valid until: {{ valid_until }}
{% if line_items %}
Items:
{% for item in line_items %}- {{ item.description }} x{{ item.quantity }} @ {{ item.unit_price }} = {{ item.line_total }}
{% endfor %}{% endif %}
Total: {{ total }}
{% if deposit %}Deposit due now: {{ deposit }}
{% endif %}
{% if checkout_url %}Pay {{ amount_due }} securely: {{ checkout_url }}{% else %}{{ payment_instructions }} {{ payment_url }}{% endif %}
{% if attachment_note %}
{{ attachment_note }}
{% endif %}{% if terms %}
Terms: {{ terms }}
{% endif %}
Cheers,
The {{ business_name }} Team

Unsubscribe: {{ unsubscribe_url }}
"""

QUOTE_TEMPLATE = EmailTemplate(
    name="quote",
    subject=_QUOTE_SUBJECT,
    html=_QUOTE_HTML,
    text=_QUOTE_TEXT,
)

DEFAULT_TEMPLATES: Dict[str, EmailTemplate] = {
    QUOTE_TEMPLATE.name: QUOTE_TEMPLATE,
}


class TemplateRenderer:
    """Renders registered email templates with Jinja2."""

    def __init__(self, templates: Optional[Mapping[str, EmailTemplate]] = None):
        self._templates: Dict[str, EmailTemplate] = dict(
            DEFAULT_TEMPLATES if templates is None else templates
        )
        # Missing variables render as "", attribute access on them included.
        self._html_env = Environment(autoescape=True, undefined=ChainableUndefined)
        self._text_env = Environment(
            autoescape=False,
            undefined=ChainableUndefined,
            keep_trailing_newline=True,
        )

    def register(self, template: EmailTemplate) -> None:
        self._templates[template.name] = template
        logger.info(f"Registered email template: {template.name}")

    def has_template(self, name: str) -> bool:
        return name in self._templates

    def require(self, name: str) -> EmailTemplate:
        """Return a template or raise TemplateNotFound."""
        template = self._templates.get(name)
        if template is None:
            raise TemplateNotFound(name)
        return template

    def render(self, template_name: str, variables: Mapping[str, Any]) -> RenderedEmail:
        """
        Render a template.

        Args:
            template_name: Registered template name
            variables: String values, or lists of string maps for repeated rows

        Returns:
            RenderedEmail with subject, html and text

        Raises:
            TemplateNotFound: If no template is registered under the name
        """
        template = self.require(template_name)
        context = dict(variables)

        subject = self._text_env.from_string(template.subject).render(context)
        html = self._html_env.from_string(template.html).render(context)
        text = self._text_env.from_string(template.text).render(context)

        return RenderedEmail(
            subject=" ".join(subject.split()),
            html=html,
            text=text,
        )


# ---------------------------------------------------------------------------
# Typed variables for the quote template
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class QuoteLineVariables:
    description: str
    quantity: str
    unit_price: str
    line_total: str


@dataclass(frozen=True)
class QuoteEmailVariables:
    """Validated inputs for the quote email.

    Built by the orchestrator from a QuoteSnapshot and converted to the
    renderer's flat map only at the render boundary.
    """
    customer_name: str
    quote_number: str
    business_name: str
    total: str
    amount_due: str
    valid_until: str
    payment_url: str
    unsubscribe_url: str
    checkout_url: str = ""
    deposit: str = ""
    payment_instructions: str = ""
    attachment_note: str = ""
    message: str = ""
    terms: str = ""
    service_type: str = ""
    event_date: str = ""
    event_location: str = ""
    line_items: tuple[QuoteLineVariables, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        for name in ("customer_name", "quote_number", "total", "payment_url"):
            if not getattr(self, name):
                raise ValueError(f"QuoteEmailVariables.{name} is required")

    def to_variables(self) -> Dict[str, Any]:
        variables: Dict[str, Any] = {
            "customer_name": self.customer_name,
            "quote_number": self.quote_number,
            "business_name": self.business_name,
            "total": self.total,
            "amount_due": self.amount_due,
            "valid_until": self.valid_until,
            "payment_url": self.payment_url,
            "unsubscribe_url": self.unsubscribe_url,
            "checkout_url": self.checkout_url,
            "deposit": self.deposit,
            "payment_instructions": self.payment_instructions,
            "attachment_note": self.attachment_note,
            "message": self.message,
            "terms": self.terms,
            "service_type": self.service_type,
            "event_date": self.event_date,
            "event_location": self.event_location,
        }
        line_items: List[Dict[str, str]] = [
            {
                "description": item.description,
                "quantity": item.quantity,
                "unit_price": item.unit_price,
                "line_total": item.line_total,
            }
            for item in self.line_items
        ]
        variables["line_items"] = line_items
        return variables
