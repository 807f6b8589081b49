from chatrelay.codec import (
    PrivateMessage,
    encode_coordinator,
    encode_members,
    encode_message,
    encode_name_accepted,
    encode_submit_name,
    left_new_coordinator_text,
    parse_private,
    parse_quit,
)


def test_encode_commands() -> None:
    assert encode_submit_name() == "SUBMITNAME"
    assert encode_name_accepted("alice") == "NAMEACCEPTED alice"
    assert encode_message("alice(12:00): hi") == "MESSAGE alice(12:00): hi"
    assert encode_coordinator("bob") == "COORDINATOR bob"


def test_encode_coordinator_without_holder() -> None:
    assert encode_coordinator(None) == "COORDINATOR null"


def test_encode_members_is_sorted() -> None:
    assert encode_members({"carol", "alice", "bob"}) == "MEMBERS [alice, bob, carol]"
    assert encode_members([]) == "MEMBERS []"


def test_parse_private_extracts_target_and_body() -> None:
    assert parse_private("/[bob]hello") == (True, PrivateMessage("bob", "hello"))
    assert parse_private("/[bob] hi there") == (True, PrivateMessage("bob", " hi there"))


def test_parse_private_keeps_target_verbatim() -> None:
    assert parse_private("/[ bob ]hi") == (True, PrivateMessage(" bob ", "hi"))
    assert parse_private("/[]hi") == (True, PrivateMessage("", "hi"))


def test_parse_private_body_may_contain_brackets() -> None:
    assert parse_private("/[bob]see [1]") == (True, PrivateMessage("bob", "see [1]"))


def test_parse_private_malformed() -> None:
    assert parse_private("/[bob hello") == (True, None)
    assert parse_private("/[") == (True, None)


def test_parse_private_ignores_other_lines() -> None:
    assert parse_private("hello [bob]") == (False, None)
    assert parse_private("/quit") == (False, None)
    assert parse_private("") == (False, None)
    assert parse_private("/ [bob]x") == (False, None)


def test_parse_quit_is_case_insensitive_prefix() -> None:
    assert parse_quit("/quit")
    assert parse_quit("/QUIT")
    assert parse_quit("/Quit now")
    assert not parse_quit("quit")
    assert not parse_quit(" /quit")
    assert not parse_quit("")


def test_left_new_coordinator_text() -> None:
    assert (
        left_new_coordinator_text("alice", "bob", "12:00")
        == "alice has left. The new coordinator is: bob(12:00)"
    )
