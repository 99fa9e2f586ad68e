"""
Subtitle parsing service.
Converts VTT, SRT, YouTube json3 event lists and plain text into timed entries.
"""

import json
import re
from enum import Enum
from typing import Any, List, Optional, Tuple, Union

from pydantic import ValidationError as PydanticValidationError

from models.transcript import TimedEntry
from services.errors import ParseError


# Synthetic duration given to each line of a plain text transcript
PLAIN_LINE_DURATION = 5.0

CUE_FORMATS = {"vtt", "srt"}
STRUCTURED_FORMATS = {"json", "json3"}

_MIME_HINTS = {
    "text/vtt": "vtt",
    "application/x-subrip": "srt",
    "application/json": "json",
    "text/plain": "txt",
}

_BARE_INDEX = re.compile(r"^\d+$")


class _CueState(Enum):
    SEEKING_CUE = "seeking_cue"
    IN_TIMESTAMP = "in_timestamp"
    IN_TEXT = "in_text"


def parse_timestamp(value: str) -> float:
    """
    Convert ``H:MM:SS.mmm`` or ``MM:SS.mmm`` to seconds.

    A comma is accepted as decimal separator. Malformed input yields 0.
    """
    parts = value.strip().replace(",", ".").split(":")
    try:
        if len(parts) == 3:
            hours, minutes, seconds = int(parts[0]), int(parts[1]), float(parts[2])
        elif len(parts) == 2:
            hours, minutes, seconds = 0, int(parts[0]), float(parts[1])
        else:
            return 0.0
    except ValueError:
        return 0.0

    if hours < 0 or minutes < 0 or seconds < 0:
        return 0.0
    return hours * 3600 + minutes * 60 + seconds


def format_hint_for(name_or_mime: Optional[str]) -> Optional[str]:
    """Derive a parser hint from a file name, extension or MIME type."""
    if not name_or_mime:
        return None

    value = name_or_mime.lower().split(";")[0].strip()
    if value in _MIME_HINTS:
        return _MIME_HINTS[value]

    ext = value.rsplit(".", 1)[-1]
    if ext in CUE_FORMATS | STRUCTURED_FORMATS | {"txt"}:
        return ext
    return None


class SubtitleParser:
    """Parse raw caption payloads into an ordered list of TimedEntry."""

    def parse(
        self,
        raw_content: Union[str, bytes, dict, list],
        format_hint: Optional[str] = None,
    ) -> List[TimedEntry]:
        """
        Parse caption content into timed entries.

        Args:
            raw_content: Subtitle text, or an already decoded JSON payload
            format_hint: Optional format ('vtt', 'srt', 'json', 'json3', 'txt')

        Returns:
            Entries ordered by start time
        """
        if isinstance(raw_content, bytes):
            raw_content = raw_content.decode("utf-8", errors="replace")

        hint = (format_hint or "").lower().lstrip(".") or self._detect_format(raw_content)

        if hint in STRUCTURED_FORMATS:
            entries = self._parse_structured(raw_content)
        elif isinstance(raw_content, (dict, list)):
            raise ParseError(f"Structured payload given with '{hint}' hint")
        elif hint in CUE_FORMATS:
            entries = self._parse_cues(raw_content)
        else:
            entries = self._parse_plain_lines(raw_content)

        # Stable, so equal start times keep their source order
        return sorted(entries, key=lambda entry: entry.start)

    def _detect_format(self, content: Any) -> str:
        """Detect payload format from its shape."""
        if isinstance(content, (dict, list)):
            return "json"

        stripped = content.lstrip()
        if stripped[:1] in ("{", "["):
            try:
                json.loads(stripped)
                return "json"
            except ValueError:
                pass

        if "-->" in content:
            return "vtt"

        return "txt"

    def _parse_cues(self, content: str) -> List[TimedEntry]:
        """
        Parse cue-based text (WebVTT and SRT share this walk).

        A timestamp line or a blank line closes the open cue. Bare integer lines
        are cue indexes and ignored.
        """
        entries: List[TimedEntry] = []
        state = _CueState.SEEKING_CUE
        start = end = 0.0
        text_lines: List[str] = []

        def close_cue() -> None:
            text = self._clean_text(" ".join(text_lines))
            if text:
                entries.append(TimedEntry(text=text, start=start, duration=max(0.0, end - start)))

        for raw_line in content.splitlines():
            line = raw_line.strip()

            if "-->" in line:
                if state is not _CueState.SEEKING_CUE:
                    close_cue()
                start, end = self._parse_cue_timing(line)
                text_lines = []
                state = _CueState.IN_TIMESTAMP
                continue

            if not line:
                if state is not _CueState.SEEKING_CUE:
                    close_cue()
                    text_lines = []
                state = _CueState.SEEKING_CUE
                continue

            if _BARE_INDEX.match(line):
                continue

            if state is _CueState.SEEKING_CUE:
                # Header blocks and stray text outside a cue
                continue

            text_lines.append(line)
            state = _CueState.IN_TEXT

        if state is not _CueState.SEEKING_CUE:
            close_cue()

        return entries

    def _parse_cue_timing(self, line: str) -> Tuple[float, float]:
        start_part, _, end_part = line.partition("-->")
        # Cue settings (align:start position:0%) follow the end timestamp
        end_tokens = end_part.split()
        start = parse_timestamp(start_part)
        end = parse_timestamp(end_tokens[0]) if end_tokens else 0.0
        return start, end

    def _parse_structured(self, content: Any) -> List[TimedEntry]:
        """Parse a json3 event list, or a plain list of entry objects."""
        if isinstance(content, str):
            try:
                data = json.loads(content)
            except ValueError as e:
                raise ParseError(f"JSON parse failed: {e}") from e
        else:
            data = content

        try:
            if isinstance(data, list):
                return [TimedEntry.model_validate(item) for item in data]

            if isinstance(data, dict) and isinstance(data.get("events"), list):
                return self._parse_events(data["events"])
        except (PydanticValidationError, TypeError, ValueError) as e:
            raise ParseError(f"Malformed caption JSON: {e}") from e

        raise ParseError("Caption JSON has neither an entry list nor an 'events' list")

    def _parse_events(self, events: List[dict]) -> List[TimedEntry]:
        entries = []
        for event in events:
            segments = event.get("segs")
            if not segments:
                continue

            text = self._clean_text("".join(seg.get("utf8", "") for seg in segments))
            if not text:
                continue

            entries.append(TimedEntry(
                text=text,
                start=int(event.get("tStartMs", 0)) / 1000,
                duration=max(0, int(event.get("dDurationMs", 0))) / 1000,
            ))
        return entries

    def _parse_plain_lines(self, content: str) -> List[TimedEntry]:
        """Each non-empty line becomes an entry with a synthetic duration."""
        lines = [line.strip() for line in content.splitlines() if line.strip()]
        return [
            TimedEntry(text=line, start=index * PLAIN_LINE_DURATION, duration=PLAIN_LINE_DURATION)
            for index, line in enumerate(lines)
        ]

    def _clean_text(self, text: str) -> str:
        """Clean caption text."""
        # Remove HTML/VTT inline tags, including <00:00:01.000> word timings
        text = re.sub(r"<[^>]+>", "", text)

        # Remove [Music], [Applause] style markers
        text = re.sub(r"\[[^\]]+\]", "", text)

        # Normalize whitespace
        text = " ".join(text.split())

        return text.strip()
