# pylint: disable=missing-module-docstring,missing-function-docstring

import numpy as np
import pytest

from audio.errors import DecodeError, MalformedBufferError
from audio.pcm import decode_base64, decode_clip, encode_base64, float_to_pcm16, pcm16_to_float


def test_base64_uses_standard_alphabet_with_padding():
    assert encode_base64(b"\x00\x01") == "AAE="
    assert encode_base64(b"\xfb\xff") == "+/8="
    assert decode_base64("+/8=") == b"\xfb\xff"


def test_base64_empty_payload():
    assert encode_base64(b"") == ""
    assert decode_base64("") == b""


@pytest.mark.parametrize("bad", ["AAE", "AA*=", "-_8=", "A"])
def test_decode_base64_rejects_bad_input(bad: str):
    with pytest.raises(DecodeError):
        decode_base64(bad)


def test_pcm16_to_float_extremes():
    data = np.array([-32768, 0, 32767], dtype="<i2").tobytes()

    out = pcm16_to_float(data)

    assert out.shape == (3, 1)
    assert out.dtype == np.float32
    assert out[0, 0] == -1.0
    assert out[1, 0] == 0.0
    assert out[2, 0] == pytest.approx(32767 / 32768)


def test_pcm16_to_float_deinterleaves_channels():
    data = np.array([100, -100, 200, -200], dtype="<i2").tobytes()

    out = pcm16_to_float(data, channels=2)

    assert out.shape == (2, 2)
    assert out[:, 0].tolist() == pytest.approx([100 / 32768, 200 / 32768])
    assert out[:, 1].tolist() == pytest.approx([-100 / 32768, -200 / 32768])


def test_pcm16_to_float_rejects_odd_length():
    with pytest.raises(MalformedBufferError):
        pcm16_to_float(b"\x00\x00\x00")


def test_pcm16_to_float_rejects_partial_stereo_frame():
    with pytest.raises(MalformedBufferError):
        pcm16_to_float(b"\x00" * 6, channels=2)


def test_float_to_pcm16_asymmetric_scale_and_clamp():
    out = np.frombuffer(float_to_pcm16(np.array([1.0, -1.0, 0.0, 2.0, -3.0])), dtype="<i2")

    assert out.tolist() == [32767, -32768, 0, 32767, -32768]


def test_float_to_pcm16_truncates_toward_zero():
    out = np.frombuffer(float_to_pcm16(np.array([0.5, -0.5], dtype=np.float32)), dtype="<i2")

    # 0.5 * 32767 = 16383.5 -> 16383; -0.5 * 32768 = -16384 exactly
    assert out.tolist() == [16383, -16384]


def test_float_to_pcm16_interleaves_2d_frames():
    frames = np.array([[0.0, -1.0], [1.0, 0.0]], dtype=np.float32)

    out = np.frombuffer(float_to_pcm16(frames), dtype="<i2")

    assert out.tolist() == [0, -32768, 32767, 0]


def test_float_to_pcm16_is_little_endian():
    assert float_to_pcm16(np.array([-1.0])) == b"\x00\x80"


def test_pcm_round_trip_error_is_bounded():
    rng = np.random.default_rng(7)
    x = rng.uniform(-1.0, 1.0, size=1000).astype(np.float32)

    back = pcm16_to_float(float_to_pcm16(x))[:, 0]

    assert np.max(np.abs(back - x)) <= 2.0 / 32768 + 1e-6


def test_every_int16_survives_decode_then_encode_within_one_lsb():
    values = np.arange(-32768, 32768, dtype=np.int64)
    data = values.astype("<i2").tobytes()

    back = np.frombuffer(float_to_pcm16(pcm16_to_float(data)), dtype="<i2").astype(np.int64)

    assert back.shape == values.shape
    assert np.max(np.abs(back - values)) <= 1
    assert back[0] == -32768
    assert back[32768] == 0


def test_single_sample_buffers_round_trip_within_one_lsb():
    for v in (-32768, -32767, -1, 0, 1, 16384, 32766, 32767):
        data = np.array([v], dtype="<i2").tobytes()

        back = int(np.frombuffer(float_to_pcm16(pcm16_to_float(data)), dtype="<i2")[0])

        assert abs(back - v) <= 1


def test_decode_clip_duration_follows_rate():
    one_second = encode_base64(b"\x00\x00" * 24000)

    clip = decode_clip(one_second, sample_rate=24000)

    assert clip.frame_count == 24000
    assert clip.duration == pytest.approx(1.0)
    assert clip.channels == 1


def test_decode_clip_propagates_codec_errors():
    with pytest.raises(DecodeError):
        decode_clip("not base64!", sample_rate=24000)

    with pytest.raises(MalformedBufferError):
        decode_clip(encode_base64(b"\x01\x02\x03"), sample_rate=24000)
