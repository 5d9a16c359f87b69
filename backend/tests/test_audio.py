import asyncio
import base64
import shutil

import pytest

from podcastgen.core.audio import AudioAssembler, FfmpegTools, round_half_up
from podcastgen.core.errors import AssemblyError

from conftest import FakeAudioTools


def test_stitch_merges_in_order_and_cleans_up(scratch_dir):
    tools = FakeAudioTools()
    assembler = AudioAssembler(tools, scratch_dir=str(scratch_dir))

    merged = asyncio.run(assembler.stitch([b"one", None, b"two", b"three"], "job-1"))

    assert merged == b"onetwothree"
    inputs = tools.merged_inputs[0]
    assert len(inputs) == 3
    assert all("audio-job-1-segment-" in name for name in inputs)
    assert list(scratch_dir.iterdir()) == []


def test_stitch_with_no_valid_buffers_writes_nothing(scratch_dir):
    tools = FakeAudioTools()
    assembler = AudioAssembler(tools, scratch_dir=str(scratch_dir))

    with pytest.raises(AssemblyError):
        asyncio.run(assembler.stitch([None, b""], "job-2"))

    assert tools.merged_inputs == []
    assert list(scratch_dir.iterdir()) == []


def test_stitch_merge_failure_raises_and_cleans_up(scratch_dir):
    tools = FakeAudioTools(merge_error=AssemblyError("ffmpeg merge failed"))
    assembler = AudioAssembler(tools, scratch_dir=str(scratch_dir))

    with pytest.raises(AssemblyError):
        asyncio.run(assembler.stitch([b"a", b"b"], "job-3"))

    assert list(scratch_dir.iterdir()) == []


def test_stitch_removes_partial_merge_output(scratch_dir):
    class PartialWriteTools(FakeAudioTools):
        async def merge(self, files, output):
            with open(output, "wb") as f:
                f.write(b"half")
            raise AssemblyError("ffmpeg crashed")

    assembler = AudioAssembler(PartialWriteTools(), scratch_dir=str(scratch_dir))

    with pytest.raises(AssemblyError):
        asyncio.run(assembler.stitch([b"a"], "job-4"))

    assert list(scratch_dir.iterdir()) == []


def test_concurrent_jobs_use_distinct_scratch_names(scratch_dir):
    tools = FakeAudioTools()
    assembler = AudioAssembler(tools, scratch_dir=str(scratch_dir))

    async def both():
        return await asyncio.gather(
            assembler.stitch([b"a", b"b"], "same"),
            assembler.stitch([b"c", b"d"], "same"),
        )

    assert asyncio.run(both()) == [b"ab", b"cd"]
    first, second = tools.merged_inputs
    assert set(first).isdisjoint(second)


def test_duration_rounds_and_cleans_up(scratch_dir):
    tools = FakeAudioTools(duration=12.5)
    assembler = AudioAssembler(tools, scratch_dir=str(scratch_dir))

    assert asyncio.run(assembler.duration(b"audio")) == 13
    assert len(tools.probed) == 1
    assert list(scratch_dir.iterdir()) == []


@pytest.mark.parametrize("tools", [
    FakeAudioTools(probe_error=AssemblyError("ffprobe failed")),
    FakeAudioTools(duration=None),
])
def test_duration_is_zero_on_probe_failure(scratch_dir, tools):
    assembler = AudioAssembler(tools, scratch_dir=str(scratch_dir))

    assert asyncio.run(assembler.duration(b"audio")) == 0
    assert list(scratch_dir.iterdir()) == []


def test_duration_is_zero_when_scratch_dir_is_missing(tmp_path):
    assembler = AudioAssembler(FakeAudioTools(), scratch_dir=str(tmp_path / "missing"))

    assert asyncio.run(assembler.duration(b"audio")) == 0


def test_encode_is_a_data_uri(scratch_dir):
    assembler = AudioAssembler(FakeAudioTools(), scratch_dir=str(scratch_dir))

    uri = assembler.encode(b"\x00\x01abc")

    assert uri == "data:audio/mp3;base64," + base64.b64encode(b"\x00\x01abc").decode()
    assert assembler.encode(b"\x00\x01abc") == uri


def test_round_half_up():
    assert round_half_up(0.49) == 0
    assert round_half_up(0.5) == 1
    assert round_half_up(2.5) == 3
    assert round_half_up(7.0) == 7


def test_ffmpeg_tools_missing_binary_raises():
    tools = FfmpegTools(ffmpeg_binary="definitely-not-ffmpeg-xyz", ffprobe_binary="definitely-not-ffprobe-xyz")

    with pytest.raises(AssemblyError):
        asyncio.run(tools.merge(["a.mp3"], "out.mp3"))
    with pytest.raises(AssemblyError):
        asyncio.run(tools.probe("a.mp3"))


@pytest.mark.skipif(shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None, reason="ffmpeg not installed")
def test_ffmpeg_stitch_and_probe(tmp_path):
    async def make_tone(path, seconds):
        process = await asyncio.create_subprocess_exec(
            "ffmpeg", "-y", "-loglevel", "error", "-f", "lavfi", "-i", f"sine=frequency=440:duration={seconds}",
            "-ac", "1", str(path),
        )
        await process.wait()
        return path.read_bytes()

    async def scenario():
        first = await make_tone(tmp_path / "a.wav", 1)
        second = await make_tone(tmp_path / "b.wav", 2)
        scratch = tmp_path / "scratch"
        scratch.mkdir()
        assembler = AudioAssembler(FfmpegTools(), scratch_dir=str(scratch), audio_format="wav")
        merged = await assembler.stitch([first, second], "real")
        seconds = await assembler.duration(merged)
        return seconds, list(scratch.iterdir())

    seconds, leftovers = asyncio.run(scenario())
    assert seconds == 3
    assert leftovers == []
