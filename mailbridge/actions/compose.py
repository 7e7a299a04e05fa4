"""
Body Composer

Renders reply and forward bodies from the operator's text and the
original customer message.

HTML templates are autoescaped, so header values (From, Date, Subject)
are always escaped. The original message's HTML body is inserted as-is.
"""

from jinja2 import DictLoader, Environment, StrictUndefined, select_autoescape
from markupsafe import Markup, escape

from mailbridge.actions.models import ComposedBody
from mailbridge.shared.models.mail import MailMessage

PLACEHOLDER = "[original message not available]"

QUOTE_STYLE = "margin:0 0 0 .8ex;border-left:1px solid #ccc;padding-left:1ex"

TEMPLATES: dict[str, str] = {
    "reply.html": (
        "{{ reply }}\n"
        "<br>\n"
        "<div>On {{ date }}, {{ sender }} wrote:</div>"
        '<blockquote style="{{ quote_style }}">{{ original }}</blockquote>'
    ),
    "reply.txt": (
        "{{ reply }}\n"
        "\n"
        "On {{ date }}, {{ sender }} wrote:\n"
        "{{ quoted }}"
    ),
    "forward.html": (
        "<div>---------- Forwarded message ----------</div>\n"
        "<div>From: {{ sender }}</div>\n"
        "<div>Date: {{ date }}</div>\n"
        "<div>Subject: {{ subject }}</div>\n"
        "<div>To: {{ to }}</div>\n"
        "<br/>{{ original }}"
    ),
    "forward.txt": (
        "---------- Forwarded message ----------\n"
        "From: {{ sender }}\n"
        "Date: {{ date }}\n"
        "Subject: {{ subject }}\n"
        "To: {{ to }}\n"
        "\n"
        "{{ original }}"
    ),
}

_env = Environment(
    loader=DictLoader(TEMPLATES),
    autoescape=select_autoescape(enabled_extensions=("html",), default=False),
    undefined=StrictUndefined,
    keep_trailing_newline=True,
)


def text_to_safe_html(text: str | None) -> Markup:
    """
    Convert plain text to escaped HTML, one paragraph per line.

    Blank lines become `<p><br></p>` so vertical spacing survives.
    """
    lines = str(text or "").split("\n")
    return Markup("").join(
        Markup("<p>{}</p>").format(line) if line.strip() else Markup("<p><br></p>")
        for line in lines
    )


def _original_html(message: MailMessage) -> Markup | None:
    if message.body_html:
        return Markup(message.body_html)
    if message.body_text:
        return text_to_safe_html(message.body_text)
    return None


def _quote_text(text: str) -> str:
    if not text:
        return f"> {PLACEHOLDER}"
    return "\n".join(f"> {line}" for line in text.split("\n"))


def compose_reply(reply_text: str, original: MailMessage) -> ComposedBody:
    """
    Render a reply quoting the original message.

    Args:
        reply_text: Operator's reply as typed
        original: Customer message being answered

    Returns:
        ComposedBody with text and HTML renditions
    """
    html = _env.get_template("reply.html").render(
        reply=text_to_safe_html(reply_text),
        date=original.date,
        sender=original.email_from,
        quote_style=QUOTE_STYLE,
        original=_original_html(original) or escape(PLACEHOLDER),
    )
    text = _env.get_template("reply.txt").render(
        reply=reply_text,
        date=original.date,
        sender=original.email_from,
        quoted=_quote_text(original.body_text),
    )
    return ComposedBody(text=text, html=html)


def compose_forward(original: MailMessage) -> ComposedBody:
    """
    Render a forward of the original message under a header block.

    Returns:
        ComposedBody with text and HTML renditions
    """
    headers = {
        "sender": original.email_from,
        "date": original.date,
        "subject": original.subject,
        "to": original.email_to,
    }
    html = _env.get_template("forward.html").render(
        original=_original_html(original) or Markup("<div>{}</div>").format(PLACEHOLDER),
        **headers,
    )
    text = _env.get_template("forward.txt").render(
        original=original.body_text or PLACEHOLDER,
        **headers,
    )
    return ComposedBody(text=text, html=html)
