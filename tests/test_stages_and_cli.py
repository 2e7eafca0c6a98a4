from __future__ import annotations

from unittest import mock

from mediarelay import main as main_module
from mediarelay.config import OperationType
from mediarelay.jobs import JobStage
from mediarelay.jobs.stages import download_stage


def test_video_stage_follows_stream_codec() -> None:
    assert download_stage(OperationType.VIDEO, vcodec="avc1") is JobStage.DOWNLOADING_VIDEO
    assert download_stage(OperationType.VIDEO, vcodec="none") is JobStage.DOWNLOADING_AUDIO
    assert download_stage(OperationType.VIDEO) is JobStage.DOWNLOADING_VIDEO


def test_other_operations_use_their_own_label() -> None:
    assert download_stage(OperationType.AUDIO, vcodec="avc1") is JobStage.DOWNLOADING_AUDIO
    assert download_stage(OperationType.SUBTITLES) is JobStage.DOWNLOADING_SUBTITLES
    assert download_stage(OperationType.THUMBNAIL).value == "downloading thumbnail"


def test_operation_aliases() -> None:
    assert OperationType.from_value("Subtitles") is OperationType.SUBTITLES
    assert OperationType.from_value("thumbnail") is OperationType.THUMBNAIL
    assert OperationType.from_value("playlist") is None


def test_cli_passes_arguments_to_server() -> None:
    with mock.patch.object(main_module, "run") as run:
        main_module.main(["--host", "127.0.0.1", "--port", "8080", "--log-level", "debug"])

    run.assert_called_once_with(host="127.0.0.1", port=8080, log_level="debug")
