from assist.logging_utils import _inject_context, bind_session, current_session


def test_bind_session_scopes_context() -> None:
    assert current_session.get() == "-"

    with bind_session("s-42"):
        record = {"extra": {}}
        _inject_context(record)  # type: ignore[arg-type]
        assert record["extra"]["session"] == "s-42"

    assert current_session.get() == "-"


def test_explicit_bind_wins_over_context() -> None:
    record = {"extra": {"session": "bound"}}

    with bind_session("ambient"):
        _inject_context(record)  # type: ignore[arg-type]

    assert record["extra"]["session"] == "bound"
