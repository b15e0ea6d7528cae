"""Context assembly: turns a threat model and its inputs into ordered content blocks."""

from dataclasses import dataclass, field
from typing import List, Sequence

from constants import (
    DEFAULT_FILE_URL_EXPIRY_SECONDS,
    PDF_MIME_TYPE,
    TEXT_FILE_EXTENSIONS,
    TEXT_MIME_TYPES,
)
from content import ContentBlock, DocumentBlock, ImageBlock, TextBlock
from exceptions import ContextItemError
from model_service import LLMProvider
from monitoring import logger
from prompts import (
    analysis_instruction,
    file_label,
    files_manifest,
    inline_file,
    tickets_header,
)
from state import ContextFile, ThreatModel, TicketRecord
from storage import StorageResolver


@dataclass
class AssembledContent:
    """Ordered blocks for one user message plus the items that were skipped."""

    blocks: List[ContentBlock] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    has_context: bool = False


def _is_textual(file: ContextFile) -> bool:
    mime_type = file.mime_type.lower()
    if mime_type.startswith("text/") or mime_type in TEXT_MIME_TYPES:
        return True
    return file.original_name.lower().endswith(TEXT_FILE_EXTENSIONS)


def format_system_context(threat_model: ThreatModel) -> str:
    """Render title, descriptions and questionnaire answers as labeled sections."""
    context = "# System Information\n\n"

    if threat_model.title:
        context += f"## Project: {threat_model.title}\n\n"

    if threat_model.description:
        context += f"## Description\n{threat_model.description}\n\n"

    if threat_model.system_description:
        context += f"## System Description\n{threat_model.system_description}\n\n"

    if threat_model.questions_answers:
        context += "## Security Questionnaire Responses\n\n"
        for qa in threat_model.questions_answers:
            context += f"### {qa.question}\n{qa.answer}\n\n"

    return context


def format_ticket(ticket: TicketRecord) -> str:
    """Render a ticket snapshot. Comments are listed newest first."""
    context = f"## Ticket: {ticket.issue_key}\n\n"
    context += f"**Title:** {ticket.title}\n"
    context += f"**Type:** {ticket.issue_type}\n"
    context += f"**Status:** {ticket.status}\n"
    context += f"**Priority:** {ticket.priority or 'Not set'}\n\n"

    if ticket.description:
        context += f"### Description\n{ticket.description}\n\n"

    if ticket.labels:
        context += f"**Labels:** {', '.join(ticket.labels)}\n\n"

    if ticket.reporter:
        context += f"**Reporter:** {ticket.reporter.display_name}\n"
    if ticket.assignee:
        context += f"**Assignee:** {ticket.assignee.display_name}\n"
    context += "\n"

    if ticket.comments:
        context += f"### Comments ({len(ticket.comments)})\n\n"
        for comment in sorted(ticket.comments, key=lambda c: c.created, reverse=True):
            context += f"**{comment.author}** ({comment.created}):\n"
            context += f"{comment.body}\n\n"

    if ticket.linked_issues:
        context += "### Linked Issues\n"
        for link in ticket.linked_issues:
            context += f"- {link.link_type}: {link.issue_key} - {link.title}\n"
        context += "\n"

    if ticket.remote_links:
        context += "### External Links\n"
        for link in ticket.remote_links:
            context += f"- [{link.title}]({link.url})\n"
        context += "\n"

    # Manifest only; attachment bytes are never fetched
    if ticket.attachments:
        context += "### Attachments\n"
        for attachment in ticket.attachments:
            context += f"- {attachment.filename} ({attachment.mime_type})\n"
        context += "\n"

    return context


class ContextAssembler:
    """
    Builds the single user message sent to the provider.

    Block order is fixed: system context, tickets, file manifest and files,
    then the analysis instruction. Files the provider cannot accept are
    skipped with a warning and never abort assembly.
    """

    def __init__(
        self,
        storage: StorageResolver,
        url_expiry_seconds: int = DEFAULT_FILE_URL_EXPIRY_SECONDS,
    ) -> None:
        self.storage = storage
        self.url_expiry_seconds = url_expiry_seconds

    def build_content(
        self,
        threat_model: ThreatModel,
        files: Sequence[ContextFile],
        tickets: Sequence[TicketRecord],
        provider: LLMProvider,
    ) -> List[ContentBlock]:
        return self.assemble(threat_model, files, tickets, provider).blocks

    def assemble(
        self,
        threat_model: ThreatModel,
        files: Sequence[ContextFile],
        tickets: Sequence[TicketRecord],
        provider: LLMProvider,
    ) -> AssembledContent:
        result = AssembledContent()
        result.has_context = bool(
            threat_model.title
            or threat_model.description
            or threat_model.system_description
            or threat_model.questions_answers
            or tickets
        )

        result.blocks.append(TextBlock(text=format_system_context(threat_model)))

        if tickets:
            result.blocks.append(TextBlock(text=tickets_header(len(tickets))))
            for ticket in tickets:
                result.blocks.append(TextBlock(text=format_ticket(ticket)))

        if files:
            manifest = [f"- {f.original_name} ({f.file_type.value})" for f in files]
            result.blocks.append(TextBlock(text=files_manifest(manifest)))

            for file in files:
                try:
                    file_blocks = self._file_blocks(file, provider)
                except ContextItemError as e:
                    logger.warning(
                        "Skipping context file",
                        file_id=file.id,
                        file_name=file.original_name,
                        mime_type=file.mime_type,
                        reason=e.reason,
                    )
                    result.warnings.append(str(e))
                    continue
                result.blocks.extend(file_blocks)
                result.has_context = True

        result.blocks.append(TextBlock(text=analysis_instruction()))

        logger.info(
            "Context assembled",
            threat_model_id=threat_model.id,
            block_count=len(result.blocks),
            ticket_count=len(tickets),
            file_count=len(files),
            skipped_count=len(result.warnings),
        )
        return result

    def _file_blocks(
        self, file: ContextFile, provider: LLMProvider
    ) -> List[ContentBlock]:
        mime_type = file.mime_type.lower()
        label = TextBlock(text=file_label(file.original_name))

        if mime_type.startswith("image/"):
            if mime_type not in provider.supported_image_mime_types():
                raise ContextItemError(
                    file.original_name,
                    f"image type {mime_type} not supported by {provider.name}",
                )
            url = self._resolve_url(file)
            return [label, ImageBlock(url=url, mime_type=mime_type)]

        if mime_type == PDF_MIME_TYPE:
            if not provider.supports_document_type():
                raise ContextItemError(
                    file.original_name,
                    f"provider {provider.name} does not support PDF documents",
                )
            url = self._resolve_url(file)
            return [label, DocumentBlock(url=url, filename=file.original_name)]

        if _is_textual(file):
            text = self._read_text(file)
            return [
                label,
                TextBlock(
                    text=inline_file(file.original_name, file.file_type.value, text)
                ),
            ]

        raise ContextItemError(file.original_name, f"unsupported file type {mime_type}")

    def _resolve_url(self, file: ContextFile) -> str:
        try:
            return self.storage.resolve_url(file.storage_key, self.url_expiry_seconds)
        except Exception as e:
            raise ContextItemError(
                file.original_name, f"could not resolve URL: {e}"
            ) from e

    def _read_text(self, file: ContextFile) -> str:
        try:
            data = self.storage.read_bytes(file.storage_key)
        except Exception as e:
            raise ContextItemError(file.original_name, f"could not read file: {e}") from e
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError as e:
            raise ContextItemError(file.original_name, "file is not valid UTF-8") from e
