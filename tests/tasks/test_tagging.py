import hashlib

from peniche.tasks.tagging import command_tag, hash_key, key_color, tagged_line


def test_hash_key_is_a_stable_digest() -> None:
    expected = int.from_bytes(
        hashlib.blake2b(b"build", digest_size=8).digest(), "big"
    )
    assert hash_key("build") == expected
    assert key_color("build") == key_color("build")


def test_command_tag_wraps_name_in_brackets() -> None:
    tag = command_tag("build")
    assert tag.plain == "[build]"
    triplet = key_color("build").get_truecolor()
    value = hash_key("build")
    assert tuple(triplet) == ((value >> 16) & 0xFF, (value >> 8) & 0xFF, value & 0xFF)


def test_tagged_line_keeps_markup_literal() -> None:
    tag = command_tag("docs")
    line = tagged_line(tag, "[bold]not markup[/bold]")
    assert line.plain == "[docs] [bold]not markup[/bold]"
    assert tag.plain == "[docs]"
