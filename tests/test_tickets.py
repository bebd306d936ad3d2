from datetime import datetime, timezone

import config
from cogs.tickets import (
    HELP_DESK_SELECT_ID,
    HelpDeskView,
    TicketCloseButton,
    ticket_archive_embed,
    ticket_welcome_embed,
)
from helpdesk import Ticket, TicketStore, ticket_channel_name, ticket_type

GUILD = 1355432987793297498
OTHER_GUILD = 42
OPENED = datetime(2025, 12, 1, 12, 0, tzinfo=timezone.utc)


class User:
    def __init__(self, uid: int, name: str) -> None:
        self.id = uid
        self.name = name
        self.mention = f"<@{uid}>"

    def __str__(self) -> str:
        return self.name


def make_ticket(store, channel_id=900, requester_id=11, value="host_event", guild=GUILD):
    ticket = Ticket(
        guild_id=guild,
        channel_id=channel_id,
        number=store.next_number(guild),
        requester_id=requester_id,
        kind=ticket_type(value),
        created_at=OPENED,
    )
    store.register(ticket)
    return ticket


def fields(embed):
    return {f.name: f.value for f in embed.fields}


# ── store ──────────────────────────────────────────────────────────

def test_ticket_numbers_count_up_per_guild():
    store = TicketStore()
    assert [make_ticket(store, channel_id=c).number for c in (1, 2, 3)] == [1, 2, 3]
    assert make_ticket(store, channel_id=4, guild=OTHER_GUILD).number == 1
    assert [t.channel_id for t in store.for_guild(GUILD)] == [1, 2, 3]


def test_closing_twice_only_closes_once():
    store = TicketStore()
    ticket = make_ticket(store)
    assert 900 in store
    assert store.close(900) is ticket
    assert store.close(900) is None
    assert 900 not in store


def test_numbers_are_not_reused_after_close():
    store = TicketStore()
    make_ticket(store, channel_id=1)
    store.close(1)
    assert make_ticket(store, channel_id=2).number == 2


# ── naming ─────────────────────────────────────────────────────────

def test_channel_name_uses_a_clean_username():
    assert ticket_channel_name(7, "Juan.Dela_Cruz") == "ticket-7-juandelacruz"
    assert ticket_channel_name(8, "☆彡☆") == "ticket-8"


def test_ticket_types():
    assert ticket_type("report_concern").title == "Report Concern"
    assert ticket_type("collaborate").title == "Collaborate"
    assert ticket_type("nonsense").title == "Other"


# ── components ─────────────────────────────────────────────────────

async def test_help_desk_select_lists_every_type():
    view = HelpDeskView()
    select = view.children[0]
    assert select.custom_id == HELP_DESK_SELECT_ID
    assert [o.value for o in select.options] == [t.value for t in config.TICKET_TYPES]
    assert view.timeout is None


async def test_close_button_carries_the_channel_id():
    button = TicketCloseButton(1400294589599846511)
    assert button.item.custom_id == "ticket:close:1400294589599846511"
    assert button.channel_id == 1400294589599846511


# ── embeds ─────────────────────────────────────────────────────────

def test_welcome_embed():
    ticket = make_ticket(TicketStore())
    embed = ticket_welcome_embed(ticket, User(11, "juan"))
    assert embed.title == "🎫 Ticket #1 - Host Event"
    assert "<@11>" in embed.description
    assert "host event" in embed.description
    assert fields(embed)["Created By"] == "juan"


def test_archive_embed():
    ticket = make_ticket(TicketStore())
    closed = datetime(2025, 12, 1, 13, 0, tzinfo=timezone.utc)
    embed = ticket_archive_embed(ticket, "ticket-1-juan", User(5, "mod"), closed)
    f = fields(embed)
    assert embed.description == "**Ticket:** ticket-1-juan"
    assert f["Requester"] == "<@11> (11)"
    assert f["Closed By"] == "<@5> (5)"
    assert f["Closed At"] == f"<t:{int(closed.timestamp())}:F>"
    assert f["Channel ID"] == "900"
