from chat.sniffer import MarkerSniffer
import constants as C


def _run(fragments):
    sniffer = MarkerSniffer()
    out = []
    for fragment in fragments:
        safe = sniffer.feed(fragment)
        if safe:
            out.append(safe)
    tail = sniffer.finish()
    if tail:
        out.append(tail)
    return sniffer, out


def test_plain_prose_passes_through_fragment_by_fragment():
    sniffer, out = _run(["Hello", " wor", "ld"])
    assert out == ["Hello", " wor", "ld"]
    assert sniffer.forwarded_text == "Hello world"
    assert not sniffer.suppressed


def test_sentinel_never_leaks_for_any_split():
    text = 'Sure. {"toolname": "add", "parameters": {"a": 1, "b": 2}}'
    for i in range(1, len(text)):
        for j in range(i, len(text)):
            fragments = [text[:i], text[i:j], text[j:]]
            sniffer, out = _run([f for f in fragments if f])
            forwarded = "".join(out)
            assert C.TOOL_CALL_SENTINEL not in forwarded
            assert forwarded == "Sure. "
            assert sniffer.suppressed


def test_partial_prefix_is_withheld_then_flushed_at_end():
    sniffer = MarkerSniffer()
    assert sniffer.feed("Use {") == "Use "
    assert sniffer.feed('"to') is None
    assert sniffer.finish() == '{"to'
    assert sniffer.forwarded_text == 'Use {"to'


def test_withheld_prefix_released_when_next_fragment_breaks_it():
    sniffer = MarkerSniffer()
    assert sniffer.feed("a {") == "a "
    assert sniffer.feed("b}") == "{b}"


def test_everything_after_sentinel_is_suppressed():
    sniffer = MarkerSniffer()
    assert sniffer.feed('Calling {"toolname"') == "Calling "
    assert sniffer.feed(': "x"} and more prose') is None
    assert sniffer.finish() is None
    assert sniffer.suppressed_since == len("Calling ")


def test_suppressed_since_counts_earlier_fragments():
    sniffer = MarkerSniffer()
    sniffer.feed("abc")
    sniffer.feed('de{"tool')
    sniffer.feed('name": 1}')
    assert sniffer.suppressed
    assert sniffer.suppressed_since == 5


def test_pretty_printed_directive_is_hidden_char_by_char():
    texts = [
        'Let me add.\n{\n  "toolname": "add",\n  "parameters": {"a": 1, "b": 2}\n}',
        'Let me add. { "toolname": "add", "parameters": {"a": 1, "b": 2}}',
    ]
    for text in texts:
        sniffer, out = _run(list(text))
        forwarded = "".join(out)
        assert '"toolname"' not in forwarded
        assert "{" not in forwarded
        assert forwarded.rstrip() == "Let me add."
        assert sniffer.suppressed
        assert text[sniffer.suppressed_since] == "{"


def test_brace_and_whitespace_held_until_decided():
    sniffer = MarkerSniffer()
    assert sniffer.feed("See {") == "See "
    assert sniffer.feed("\n  ") is None
    assert sniffer.feed('"tool') is None
    assert sniffer.feed('name": "x"}') is None
    assert sniffer.suppressed_since == len("See ")
    assert sniffer.forwarded_text == "See "


def test_json_prose_without_reserved_key_is_released():
    sniffer = MarkerSniffer()
    assert sniffer.feed("Example: { ") == "Example: "
    assert sniffer.feed('"name": 1 }') == '{ "name": 1 }'
    assert sniffer.finish() is None
