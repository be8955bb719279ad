"""Tests for the message selection predicate."""

import pytest

from conftest import MEMBER_ID, make_config, make_message
from purgebot.purge.filter import matched_types, matches
from purgebot.shared.models.purge_config import MediaType

ALL = (MediaType.ALL,)


@pytest.mark.parametrize(
    "message_kwargs, expected",
    [
        ({}, False),
        ({"content": "just text"}, False),
        ({"attachment_count": 1}, True),
        ({"embed_count": 1, "embed_urls": ("https://example.com",)}, True),
        ({"embed_count": 1}, True),
        ({"sticker_count": 2}, True),
        # custom emoji alone is not media for "all"
        ({"content": "<:pog:123456789012345678>"}, False),
    ],
)
def test_all_matches_any_media_bearing_message(message_kwargs, expected):
    config = make_config(media_types=ALL)
    assert matches(make_message(1, **message_kwargs), config) is expected


def test_all_subsumes_other_listed_types():
    config = make_config(media_types=(MediaType.EMOJIS, MediaType.ALL))
    plain_emoji = make_message(1, content="<:pog:123456789012345678>")
    with_sticker = make_message(2, sticker_count=1)

    assert matches(plain_emoji, config) is False
    assert matches(with_sticker, config) is True
    assert matched_types(with_sticker, config) == [MediaType.ALL]


def test_user_filter_excludes_other_authors_even_when_media_matches():
    config = make_config(media_types=ALL, user_id=MEMBER_ID)
    other = make_message(1, author_id=MEMBER_ID + 1, attachment_count=3, sticker_count=1)
    own = make_message(2, attachment_count=1)

    assert matches(other, config) is False
    assert matched_types(other, config) == []
    assert matches(own, config) is True


def test_attachments_and_stickers():
    config = make_config(media_types=(MediaType.ATTACHMENTS,))
    assert matches(make_message(1, attachment_count=1), config)
    assert not matches(make_message(2, sticker_count=1), config)

    config = make_config(media_types=(MediaType.STICKERS,))
    assert matches(make_message(3, sticker_count=1), config)
    assert not matches(make_message(4, attachment_count=1), config)


@pytest.mark.parametrize(
    "url, expected",
    [
        ("https://tenor.com/view/cat-dance-gif-123", True),
        ("https://media.tenor.com/abc/cat.mp4", True),
        ("https://giphy.com/gifs/funny-xyz", True),
        ("https://cdn.discordapp.com/attachments/1/2/party.gif", True),
        ("https://example.com/anim.GIF?size=64", True),
        ("https://example.com/picture.png", False),
        ("https://notgiphy.example.com/thing", False),
    ],
)
def test_gifs_match_embed_urls(url, expected):
    config = make_config(media_types=(MediaType.GIFS,))
    message = make_message(1, embed_count=1, embed_urls=(url,))
    assert matches(message, config) is expected


@pytest.mark.parametrize(
    "content, expected",
    [
        ("hello <:pog:123456789012345678>", True),
        ("<a:party:123456789012345678> yay", True),
        ("plain :smile: text", False),
        ("🙂 unicode emoji", False),
    ],
)
def test_emojis_match_custom_emoji_tokens(content, expected):
    config = make_config(media_types=(MediaType.EMOJIS,))
    assert matches(make_message(1, content=content), config) is expected


def test_requested_types_are_or_combined():
    config = make_config(media_types=(MediaType.STICKERS, MediaType.EMOJIS))
    message = make_message(1, content="<:pog:123456789012345678>")

    assert matches(message, config)
    assert matched_types(message, config) == [MediaType.EMOJIS]
    assert not matches(make_message(2, attachment_count=1), config)


def test_filter_is_deterministic():
    config = make_config(media_types=(MediaType.GIFS, MediaType.ATTACHMENTS))
    messages = [
        make_message(1, attachment_count=1),
        make_message(2, embed_count=1, embed_urls=("https://giphy.com/gifs/x",)),
        make_message(3, content="nothing"),
    ]
    first = [matches(m, config) for m in messages]
    second = [matches(m, config) for m in reversed(messages)][::-1]
    assert first == second == [True, True, False]
