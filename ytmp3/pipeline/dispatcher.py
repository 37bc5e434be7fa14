"""Request dispatcher: inbound commands → admission → conversion → delivery.

Handles the three requester commands (convert a link, cancel, allow a user)
on behalf of a DeliveryChannel. Every failure in a conversion is turned into
a requester-facing notice here; nothing propagates back to the channel, and
the admission slot is released exactly once per admitted request.
"""

import logging
import re
from pathlib import Path
from typing import Any, Optional

from ytmp3.config.access import AccessRegistry
from ytmp3.config.models import AppConfig
from ytmp3.domain import duration_policy
from ytmp3.domain.errors import (
    AdmissionClosedError,
    AlreadyActiveError,
    InvalidVideoUrlError,
    NotFoundError,
    QueueFullError,
    TooLongError,
)
from ytmp3.domain.events import TaskCanceled, TaskFinished, TaskProgressUpdated, TaskStarted
from ytmp3.domain.interfaces import DeliveryChannel, StatusMessage
from ytmp3.domain.models import ConvertRequest, DispatchResult, TaskStatus
from ytmp3.pipeline.admission import AdmissionController, AdmissionTicket
from ytmp3.pipeline.task import ConversionTask

YOUTUBE_URL_RE = re.compile(
    r"^(?:https?://)?(?:www\.)?"
    r"(?:youtu\.be/|youtube(?:-nocookie)?\.com/(?:embed/|v/|watch\?v=|watch\?.+&v=))"
    r"((?:\w|-){11})(?:\S+)?$"
)

RECEIVED_TEXT = "Got your YouTube MP3 request!"
RESOLVING_TEXT = "Resolving YouTube video..."
FINISHED_TEXT = "YouTube MP3 download complete!"
CANCELED_TEXT = "YouTube MP3 download canceled!"
SENDING_TEXT = "Sending YouTube MP3..."
CAPTION_TEXT = "YouTube MP3 conversion complete!"
NOT_FOUND_TEXT = "Conversion failed: video not found!"
ALREADY_ACTIVE_TEXT = "Only one YouTube MP3 conversion at a time, please!"
QUEUE_FULL_TEXT = "Too many users right now! Please try again later."
CLOSED_TEXT = "The converter is shutting down. Please try again later."


def parse_video_id(text: str) -> str:
    """Extracts the 11-character video id from a YouTube link."""
    match = YOUTUBE_URL_RE.match(text.strip())
    if not match:
        raise InvalidVideoUrlError(text)
    return match.group(1)


def progress_text(percent: int) -> str:
    return f"Downloading YouTube MP3 - {percent}%\n\nTo cancel use: /cancel"


def help_text(bitrate: int) -> str:
    return "\n".join([
        "Let me convert YouTube videos to MP3 for you!\n",
        "Just paste a YouTube video link.",
        f"Current audio bitrate: {bitrate}kbps",
        f"Maximum video length: {duration_policy.max_length(bitrate):g}s",
    ])


def too_long_text(error: TooLongError) -> str:
    return (
        "Conversion failed: video is too long!\n"
        f"At {error.bitrate}kbps,\n"
        f"the length may not exceed {error.max_length:g}s!"
    )


class _EditableStatus:
    """Skips edits that would not change the text."""

    def __init__(self, message: StatusMessage, text: str):
        self._message = message
        self._text = text

    def update(self, text: str):
        if text == self._text:
            return
        self._text = text
        self._message.update(text)

    def delete(self):
        self._message.delete()


class RequestDispatcher:
    """Drives conversion requests for one DeliveryChannel.

    Args:
        config: Application config (bitrate, download path).
        admission: Shared AdmissionController.
        access: AccessRegistry for the whitelist check and `allow`.
        lookup: Video lookup collaborator (`fetch_info`).
        source: Audio source collaborator (`open_audio_stream`).
        transcoder: Transcoder collaborator (`transcode`).
        channel: Where status messages and audio go.
    """

    def __init__(
        self,
        config: AppConfig,
        admission: AdmissionController,
        access: AccessRegistry,
        lookup: Any,
        source: Any,
        transcoder: Any,
        channel: DeliveryChannel,
    ):
        self.config = config
        self.admission = admission
        self.access = access
        self.lookup = lookup
        self.source = source
        self.transcoder = transcoder
        self.channel = channel
        self.logger = logging.getLogger(__name__)

    @property
    def bitrate(self) -> int:
        return self.config.general.bitrate

    def help_text(self) -> str:
        return help_text(self.bitrate)

    def failure_text(self, cause: Optional[str], video_id: str) -> str:
        detail = f"\n{cause}\n" if cause else ""
        owner = self.access.owner_username
        report = f"Please report it to @{owner}" if owner else "Please report it"
        return (
            f"Conversion failed: unknown error!\n{detail}\n{report}\n\n"
            f"YouTube video ID: {video_id}"
        )

    def not_allowed_text(self) -> str:
        owner = self.access.owner_username
        contact = f"\nContact @{owner} if you need access." if owner else ""
        return f"You are not on this converter's whitelist!{contact}"

    def handle_help(self, requester_id: str):
        self.channel.send_message(requester_id, self.help_text())

    def handle_allow(self, requester_id: str, user_id: int, target_user_id: int) -> bool:
        """Owner-only whitelist mutation. Non-owners are ignored."""
        if not self.access.is_owner(user_id):
            self.logger.info(f"ALLOW_DENIED: user_id={user_id}")
            return False
        self.access.allow(target_user_id)
        self.channel.send_message(requester_id, f"Added {target_user_id}")
        return True

    def handle_cancel(self, requester_id: str) -> bool:
        """Routes a cancel to the requester's task. False if nothing is active."""
        ticket = self.admission.ticket(requester_id)
        if ticket is None:
            return False
        self.logger.info(f"CANCEL_REQUEST: {requester_id}")
        ticket.cancel()
        return True

    def handle_convert(self, request: ConvertRequest) -> DispatchResult:
        try:
            video_id = parse_video_id(request.text)
        except InvalidVideoUrlError:
            return DispatchResult.INVALID_URL

        requester_id = request.requester_id
        if not self.access.is_allowed(request.user_id):
            self.channel.send_message(requester_id, self.not_allowed_text())
            return DispatchResult.REJECTED

        try:
            ticket = self.admission.try_admit(requester_id)
        except AlreadyActiveError:
            self.channel.send_message(requester_id, ALREADY_ACTIVE_TEXT)
            return DispatchResult.REJECTED
        except QueueFullError:
            self.channel.send_message(requester_id, QUEUE_FULL_TEXT)
            return DispatchResult.REJECTED
        except AdmissionClosedError:
            self.channel.send_message(requester_id, CLOSED_TEXT)
            return DispatchResult.REJECTED

        try:
            return self._convert(ticket, request, video_id)
        finally:
            self.admission.release(requester_id)

    def _convert(self, ticket: AdmissionTicket, request: ConvertRequest, video_id: str) -> DispatchResult:
        requester_id = request.requester_id
        status: Optional[_EditableStatus] = None
        try:
            status = _EditableStatus(
                self.channel.send_status(requester_id, RECEIVED_TEXT, reply_to=request.reply_to),
                RECEIVED_TEXT,
            )
            status.update(RESOLVING_TEXT)

            task = ConversionTask.create(
                video_id,
                self.bitrate,
                Path(self.config.general.download_path) / requester_id,
                self.lookup,
                self.source,
                self.transcoder,
                cancel_event=ticket.cancel_event,
            )
            ticket.bind(task)
            task.subscribe(TaskStarted, lambda e: status.update(progress_text(0)))
            task.subscribe(TaskProgressUpdated, lambda e: status.update(progress_text(e.percent)))
            task.subscribe(TaskFinished, lambda e: status.update(FINISHED_TEXT))
            task.subscribe(TaskCanceled, lambda e: status.update(CANCELED_TEXT))

            outcome = task.start().wait()
            if outcome.status == TaskStatus.CANCELED:
                return DispatchResult.CANCELED
            if outcome.status == TaskStatus.FAILED:
                self._notify(requester_id, status, self.failure_text(outcome.error_message, video_id))
                return DispatchResult.FAILED

            status.update(SENDING_TEXT)
            try:
                self.channel.send_audio(
                    requester_id,
                    task.paths.audio,
                    caption=CAPTION_TEXT,
                    filename=f"{task.info.title}.mp3",
                    reply_to=request.reply_to,
                )
            finally:
                task.cleanup()
            status.delete()
            self.logger.info(f"DELIVERED: {video_id} to {requester_id}")
            return DispatchResult.DELIVERED
        except NotFoundError:
            self._notify(requester_id, status, NOT_FOUND_TEXT)
            return DispatchResult.NOT_FOUND
        except TooLongError as e:
            self._notify(requester_id, status, too_long_text(e))
            return DispatchResult.TOO_LONG
        except Exception as e:
            self.logger.exception(f"CONVERT_ERROR: {video_id} for {requester_id}")
            self._notify(requester_id, status, self.failure_text(str(e), video_id))
            return DispatchResult.FAILED

    def _notify(self, requester_id: str, status: Optional[_EditableStatus], text: str):
        try:
            if status is not None:
                status.update(text)
            else:
                self.channel.send_message(requester_id, text)
        except Exception:
            self.logger.exception(f"NOTIFY_ERROR: {requester_id}")
