import json

import pytest

import main
from models.transcript import TimedEntry
from services.batch.queue import BatchQueue
from services.cache import TTLCache
from services.enrichment.processor import TranscriptProcessor
from services.llm.language_ai import LanguageAIService


class FakeResolver:
    async def extract_captions(self, video_id, language="en"):
        return [TimedEntry(text="Thank you for watching.", start=0, duration=2)]


@pytest.fixture
def offline_cli(monkeypatch, disabled_client):
    processor = TranscriptProcessor(
        ai=LanguageAIService(client=disabled_client, cache=TTLCache()),
        cache=TTLCache(),
        sentence_delay=0,
    )
    monkeypatch.setattr(main, "CaptionSourceResolver", FakeResolver)
    monkeypatch.setattr(main, "get_transcript_processor", lambda: processor)
    queue = BatchQueue(processor.execute_request, chunk_delay=0, cooldown=0)
    monkeypatch.setattr(main, "get_batch_queue", lambda: queue)


def test_invalid_video_exits_with_usage_error(capsys):
    assert main.main(["not a url"]) == main.EXIT_INVALID_INPUT
    assert "Not a video URL" in capsys.readouterr().err


def test_json_output_uses_camel_case(offline_cli, capsys):
    assert main.main(["https://youtu.be/dQw4w9WgXcQ", "--json"]) == 0

    artifact = json.loads(capsys.readouterr().out)
    assert artifact["videoId"] == "dQw4w9WgXcQ"
    assert artifact["sentences"][0]["originalText"] == "Thank you for watching."
    assert artifact["insights"]["totalSentences"] == 1


def test_summary_output(offline_cli, capsys):
    assert main.main(["dQw4w9WgXcQ"]) == 0

    out = capsys.readouterr().out
    assert "Sentences: 1" in out
    assert "Thank you" in out


def test_several_videos_go_through_the_batch_queue(offline_cli, capsys):
    assert main.main(["dQw4w9WgXcQ", "https://youtu.be/aaaaaaaaaaa", "--json"]) == 0

    artifacts = json.loads(capsys.readouterr().out)
    assert [artifact["videoId"] for artifact in artifacts] == ["dQw4w9WgXcQ", "aaaaaaaaaaa"]
    assert all(artifact["insights"]["totalSentences"] == 1 for artifact in artifacts)


def test_invalid_video_among_several_is_rejected(capsys):
    assert main.main(["dQw4w9WgXcQ", "nope"]) == main.EXIT_INVALID_INPUT
    assert "Not a video URL or id: nope" in capsys.readouterr().err
