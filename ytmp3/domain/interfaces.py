from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional


class StatusMessage(ABC):
    """
    A single status message that is edited as a request progresses.
    """
    @abstractmethod
    def update(self, text: str) -> None:
        pass

    @abstractmethod
    def delete(self) -> None:
        pass


class DeliveryChannel(ABC):
    """
    Contract for the transport that talks to requesters (chat, terminal, ...).
    """
    @abstractmethod
    def send_message(self, requester_id: str, text: str) -> None:
        pass

    @abstractmethod
    def send_status(self, requester_id: str, text: str, reply_to: Optional[str] = None) -> StatusMessage:
        """
        Sends a message that will be updated in place for the rest of the request.
        """
        pass

    @abstractmethod
    def send_audio(
        self,
        requester_id: str,
        audio_path: Path,
        caption: str,
        filename: str,
        reply_to: Optional[str] = None,
    ) -> None:
        """
        Delivers the finished audio file as an attachment.

        Args:
            requester_id: Chat/session that asked for the conversion.
            audio_path: Local path of the finished MP3.
            caption: Text shown with the attachment.
            filename: Name the requester sees (usually the video title).
            reply_to: Optional id of the request message to reply to.
        """
        pass
