"""
Notification Gateway — turns (job, vendor, required services) into a
delivered RFQ message.

The lifecycle manager only depends on the NotificationGateway contract.
The shipped implementation is e-mail: a renderer (fixed template or an
LLM-drafted body) plus an SMTP transport.
"""

from __future__ import annotations

import html
import logging
import smtplib
from abc import ABC, abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from rfq_engine.config import Settings, get_settings
from rfq_engine.models.schemas import DeliveryReceipt, Job, ServiceRequirement, Vendor
from rfq_engine.services.capability_service import describe_services
from rfq_engine.services.llm_service import llm_text_call

logger = logging.getLogger(__name__)

QUOTE_CONTENTS_REQUESTED = [
    "Unit pricing breakdown for each line item/service",
    "Lead time (turnaround time)",
    "Any setup, tooling, or die costs",
    "Minimum order quantities (if applicable)",
    "Shipping costs or options",
    "Payment terms",
]


def rfq_subject(job: Job) -> str:
    return f"RFQ: {job.number} - {job.title}"


def _spec_lines(job: Job) -> list[str]:
    spec = job.spec
    if spec is None:
        return ["Specifications to be determined."]
    lines = [
        f"Product Type: {spec.product_type or 'TBD'}",
        f"Finished Size: {spec.finished_size or 'TBD'}",
        f"Flat Size: {spec.flat_size or 'TBD'}",
        f"Colors: {spec.colors or 'TBD'}",
        f"Paper Type: {spec.paper_type or 'TBD'}",
    ]
    if spec.cover_paper_type:
        lines.append(f"Cover Paper: {spec.cover_paper_type}")
    if spec.page_count:
        lines.append(f"Page Count: {spec.page_count}")
    if spec.binding_style:
        lines.append(f"Binding: {spec.binding_style}")
    if spec.coating:
        lines.append(f"Coating: {spec.coating}")
    if spec.finishing:
        lines.append(f"Finishing: {spec.finishing}")
    return lines


def _line_item_lines(job: Job) -> list[str]:
    return [f"- {item.description} (Quantity: {item.quantity:,})" for item in job.line_items]


def _deadline_text(job: Job) -> str:
    if job.due_date:
        return f"Required by: {job.due_date:%m/%d/%Y}"
    return "Required by: As soon as possible"


# ── Renderers ────────────────────────────────────────────


class MessageRenderer(ABC):
    @abstractmethod
    def render(self, job: Job, vendor: Vendor, required: ServiceRequirement) -> str:
        ...


class TemplateRenderer(MessageRenderer):
    """Deterministic plain-text RFQ body."""

    def __init__(self, sender_name: str = "Print Procurement", sender_email: str = ""):
        self.sender_name = sender_name
        self.sender_email = sender_email

    def render(self, job: Job, vendor: Vendor, required: ServiceRequirement) -> str:
        parts = [
            f"Hello {vendor.name},",
            "",
            f"We are requesting a quote for job {job.number} - {job.title}.",
            f"Required services: {describe_services(required)}",
            "",
            "Job specifications:",
            *_spec_lines(job),
        ]
        items = _line_item_lines(job)
        if items:
            parts += ["", "Line items:", *items]
        parts += ["", _deadline_text(job), "", "Please include in your quote:"]
        parts += [f"{i}. {line}" for i, line in enumerate(QUOTE_CONTENTS_REQUESTED, start=1)]
        parts += ["", "Thank you,", self.sender_name]
        if self.sender_email:
            parts.append(self.sender_email)
        return "\n".join(parts)


class LLMRenderer(MessageRenderer):
    """Drafts the RFQ body with the configured LLM."""

    def __init__(self, sender_name: str = "Print Procurement", sender_email: str = ""):
        self.sender_name = sender_name
        self.sender_email = sender_email

    def build_prompt(self, job: Job, vendor: Vendor, required: ServiceRequirement) -> str:
        contact = next((c.name for c in vendor.contacts if c.is_primary and c.name), vendor.name)
        requested = "\n".join(
            f"{i}. {line}" for i, line in enumerate(QUOTE_CONTENTS_REQUESTED, start=1)
        )
        return (
            "Write a professional Request for Quote (RFQ) email to send to a print vendor.\n\n"
            "Context:\n"
            f"- Sending to: {vendor.name} ({contact})\n"
            f"- For Job: {job.number} - {job.title}\n"
            f"- Customer: {job.customer_name or 'N/A'}\n"
            f"- Required Services: {describe_services(required)}\n\n"
            "Job Specifications:\n" + "\n".join(_spec_lines(job)) + "\n\n"
            "Line Items:\n" + ("\n".join(_line_item_lines(job)) or "- None listed") + "\n\n"
            f"Deadline:\n{_deadline_text(job)}\n\n"
            f"Required in Quote Response:\n{requested}\n\n"
            "Tone: professional, clear, include all technical specs, friendly but business-focused.\n\n"
            f"Sign-off:\n{self.sender_name}\n{self.sender_email}\n\n"
            "Generate the email body only (no subject line)."
        )

    def render(self, job: Job, vendor: Vendor, required: ServiceRequirement) -> str:
        body = llm_text_call(self.build_prompt(job, vendor, required), max_retries=1)
        if not body.strip():
            raise RuntimeError(f"LLM returned an empty RFQ body for vendor {vendor.name}")
        return body


# ── Transport ────────────────────────────────────────────


class SmtpTransport:
    """Sends plain-text + HTML e-mail over SMTP."""

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        sender_email: str = "",
        sender_name: str = "",
        timeout: float = 30.0,
    ):
        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.use_tls = use_tls
        self.sender_email = sender_email
        self.sender_name = sender_name
        self.timeout = timeout

    def _build_message(self, to: str, subject: str, body: str) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["From"] = f"{self.sender_name} <{self.sender_email}>" if self.sender_name else self.sender_email
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(body, "plain"))
        msg.attach(MIMEText(html.escape(body).replace("\n", "<br>"), "html"))
        return msg

    def send(self, to: str, subject: str, body: str) -> DeliveryReceipt:
        msg = self._build_message(to, subject, body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout) as server:
                if self.use_tls:
                    server.starttls()
                if self.username:
                    server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            logger.warning(f"RFQ email to {to} failed: {e}")
            return DeliveryReceipt(success=False, error=str(e))

        logger.info(f"RFQ email sent: {subject[:60]} → {to}")
        return DeliveryReceipt(success=True)


# ── Gateway ──────────────────────────────────────────────


class NotificationGateway(ABC):
    """What the lifecycle manager needs from a message channel."""

    @abstractmethod
    def render(self, job: Job, vendor: Vendor, required: ServiceRequirement) -> str:
        ...

    @abstractmethod
    def send(self, to: Optional[str], subject: str, body: str) -> DeliveryReceipt:
        ...


class EmailNotificationGateway(NotificationGateway):
    def __init__(self, renderer: MessageRenderer, transport: SmtpTransport):
        self.renderer = renderer
        self.transport = transport

    def render(self, job: Job, vendor: Vendor, required: ServiceRequirement) -> str:
        return self.renderer.render(job, vendor, required)

    def send(self, to: Optional[str], subject: str, body: str) -> DeliveryReceipt:
        if not to:
            return DeliveryReceipt(success=False, error="No email address")
        return self.transport.send(to, subject, body)


def build_notification_gateway(settings: Optional[Settings] = None) -> Optional[NotificationGateway]:
    """
    Gateway from settings. Returns None (dry-run dispatch) in mock mode or
    when no SMTP host is configured.
    """
    settings = settings or get_settings()
    if settings.mock_mode or not settings.smtp_host:
        logger.info("No SMTP host configured — RFQ dispatch runs in dry-run mode")
        return None

    renderer_cls = LLMRenderer if settings.groq_api_key else TemplateRenderer
    renderer = renderer_cls(sender_name=settings.rfq_sender_name, sender_email=settings.rfq_sender_email)
    transport = SmtpTransport(
        host=settings.smtp_host,
        port=settings.smtp_port,
        username=settings.smtp_username,
        password=settings.smtp_password,
        use_tls=settings.smtp_use_tls,
        sender_email=settings.rfq_sender_email,
        sender_name=settings.rfq_sender_name,
    )
    logger.info(f"RFQ gateway: {renderer_cls.__name__} via SMTP {settings.smtp_host}:{settings.smtp_port}")
    return EmailNotificationGateway(renderer, transport)
