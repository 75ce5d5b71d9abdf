"""Realtime backends producing replies for inbound frames."""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict

from tenant_gateway.domain.models import SessionState

AUDIO_INPUT_LABEL = "[audio input]"
AUDIO_OUTPUT_LABEL = "[audio output]"


@dataclass
class Exchange:
    """One reply plus what the history log should record for it."""
    output_type: str
    data: str
    assistant_content: str


def history_content(input_type: str, data: str) -> str:
    """Audio payloads are logged by label only."""
    return AUDIO_INPUT_LABEL if input_type == "audio" else data


class RealtimeBackend(ABC):
    @abstractmethod
    async def reply(self, session: SessionState, input_type: str, data: str) -> Exchange: pass


class EchoBackend(RealtimeBackend):
    """Mock backend: text gets a derived greeting, audio is echoed back."""

    async def reply(self, session: SessionState, input_type: str, data: str) -> Exchange:
        if input_type == "audio":
            return Exchange(output_type="audio", data=data, assistant_content=AUDIO_OUTPUT_LABEL)
        text = f"Hello back! You sent: {data}"
        return Exchange(output_type="text", data=text, assistant_content=text)


def default_backends(names) -> Dict[str, RealtimeBackend]:
    echo = EchoBackend()
    return {name: echo for name in names}
