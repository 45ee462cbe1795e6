"""Preview controller states.

Exactly one of these describes a controller at any time. They are plain
frozen dataclasses, so presentation code can ``match`` on them:

    match controller.state:
        case Loaded(metadata=m): ...
        case Failed(code=code): ...
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from linkglance.errors import ErrorCode
    from linkglance.models.metadata import LinkMetadata


@dataclass(frozen=True, slots=True)
class Idle:
    pass


@dataclass(frozen=True, slots=True)
class Loading:
    url: str


@dataclass(frozen=True, slots=True)
class Loaded:
    url: str
    metadata: LinkMetadata


@dataclass(frozen=True, slots=True)
class Failed:
    url: str
    error: Exception
    code: ErrorCode


PreviewState = Idle | Loading | Loaded | Failed
