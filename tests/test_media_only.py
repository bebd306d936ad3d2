import pytest

from media import MediaOnlyStore, attachment_is_media, message_has_media

GUILD = 1355432987793297498


@pytest.mark.parametrize(
    "filename, content_type, expected",
    [
        ("cat.png", "image/png", True),
        ("clip.MP4", None, True),
        ("voice.ogg", "audio/ogg", True),
        ("notes.txt", "text/plain", False),
        ("README", None, False),
        ("photo", "image/jpeg", True),
    ],
)
def test_attachment_is_media(filename, content_type, expected):
    assert attachment_is_media(filename, content_type) is expected


def test_text_only_message_has_no_media():
    assert not message_has_media("hello everyone")
    assert not message_has_media("")
    assert not message_has_media("see https://example.com/page")


def test_attachments_count_as_media():
    assert message_has_media("", [("cat.png", "image/png")])
    assert not message_has_media("", [("notes.txt", "text/plain")])


def test_media_embeds_count_as_media():
    assert message_has_media("look", embed_types=["gifv"])
    assert not message_has_media("look", embed_types=["rich", "link"])


@pytest.mark.parametrize(
    "content",
    [
        "https://cdn.example.com/pic.jpg",
        "check this https://example.com/a/b/video.webm?size=large",
        "https://youtu.be/dQw4w9WgXcQ",
        "https://www.youtube.com/watch?v=abc",
        "https://tenor.com/view/cat-dance-123",
        "https://clips.twitch.tv/SomeClipName",
    ],
)
def test_media_links_count_as_media(content):
    assert message_has_media(content)


def test_media_only_store():
    store = MediaOnlyStore()
    assert store.add(GUILD, 10, "memes")
    assert not store.add(GUILD, 10, "memes")
    store.add(GUILD, 11, "Art")
    store.add(GUILD + 1, 12, "clips")

    assert 10 in store
    assert [c.channel_name for c in store.for_guild(GUILD)] == ["Art", "memes"]

    assert store.remove(10).channel_name == "memes"
    assert 10 not in store
    assert store.remove(10) is None
