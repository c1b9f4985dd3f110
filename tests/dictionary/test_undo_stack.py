"""撤销/重做栈指针与订阅通知的测试。"""

from app.packages.dictionary.core.enums import ImportMode
from app.packages.dictionary.services.undo_stack_manager import StackState, UndoStackManager, undo_stack_manager


def test_unknown_dictionary_has_empty_stack(db_session_fixture, dictionary_code):
    state = undo_stack_manager.get_state(db_session_fixture, dictionary_code)

    assert state == StackState(dictionary_code=dictionary_code, undo_top_id=None, redo_top_id=None)


def test_stacks_are_independent_per_dictionary(db_session_fixture, dictionary_code, run_import):
    other_code = f"{dictionary_code}-other"
    mine = run_import([{"code": "A", "name": "Alpha"}])
    theirs = run_import([{"code": "A", "name": "Alpha"}], code=other_code)

    assert undo_stack_manager.get_state(db_session_fixture, dictionary_code).undo_top_id == mine.id
    assert undo_stack_manager.get_state(db_session_fixture, other_code).undo_top_id == theirs.id


def test_pinned_batches(db_session_fixture, run_import):
    first = run_import([{"code": "A", "name": "Alpha"}])
    failed = run_import([{"code": "A", "name": "Alpha"}], mode=ImportMode.CREATE)
    second = run_import([{"code": "B", "name": "Beta"}])

    assert undo_stack_manager.is_pinned(db_session_fixture, second)
    assert not undo_stack_manager.is_pinned(db_session_fixture, first)
    assert not undo_stack_manager.is_pinned(db_session_fixture, failed)


def test_listener_failures_do_not_break_notification():
    manager = UndoStackManager()
    received = []

    def _broken(state):
        raise RuntimeError("listener exploded")

    manager.subscribe(_broken)
    unsubscribe = manager.subscribe(received.append)
    state = StackState(dictionary_code="units", undo_top_id=3, redo_top_id=None)

    manager.notify(state)
    unsubscribe()
    manager.notify(state)

    assert received == [state]
