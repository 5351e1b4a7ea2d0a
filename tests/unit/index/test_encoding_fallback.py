from __future__ import annotations

from pathlib import Path

from ace_index.index.collector import (
    decode_with_fallback,
    is_acceptable_decoding,
    read_text_with_fallback,
)


def test_utf8_is_decoded_as_is() -> None:
    assert decode_with_fallback("héllo wörld".encode()) == "héllo wörld"


def test_gbk_content_falls_back_to_gbk() -> None:
    text = "中文注释，用于测试编码回退。" * 10

    assert decode_with_fallback(text.encode("gbk")) == text


def test_latin1_text_falls_back_to_latin1() -> None:
    text = "Café naïve résumé, déjà vu. " * 10

    assert decode_with_fallback(text.encode("latin-1")) == text


def test_replacement_density_thresholds() -> None:
    assert is_acceptable_decoding("")
    assert is_acceptable_decoding("ab" + "�" * 5)
    assert not is_acceptable_decoding("ab" + "�" * 6)
    long_text = "a" * 190 + "�" * 10
    assert is_acceptable_decoding(long_text)
    assert not is_acceptable_decoding("a" * 180 + "�" * 20)


def test_read_text_with_fallback_reads_bytes(tmp_path: Path) -> None:
    path = tmp_path / "notes.txt"
    path.write_bytes("line one\r\nline two\r\n".encode())

    assert read_text_with_fallback(path) == "line one\r\nline two\r\n"
