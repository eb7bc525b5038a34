from menuchat.rounds import is_latest, is_selection_prompt, latest_prompt_index, round_for, selection_group


def _prompt(stage, sid="s"):
    return {
        "kind": "assistant",
        "content": "pick one",
        "session_id": sid,
        "requires_selection": True,
        "candidates": [{"title": "a"}, {"title": "b"}],
        "task_id": "t",
        "stage": stage,
    }


def _user(text="hi"):
    return {"kind": "user", "content": text}


HISTORY = [
    _user("make a menu"),
    _prompt("main", "s1"),        # 1: main round 1
    _prompt("main", "s2"),        # 2: main round 2
    _user("Selected option 1"),
    _prompt("sub", "s2"),         # 4: sub round 1
    {"kind": "assistant", "content": "plain", "session_id": "s3"},
    _prompt("main", "s4"),        # 6: main round 3
]


def test_is_selection_prompt():
    assert is_selection_prompt(HISTORY[1])
    assert not is_selection_prompt(HISTORY[0])
    assert not is_selection_prompt(HISTORY[5])
    assert not is_selection_prompt({"kind": "streaming", "requires_selection": True})


def test_round_counts_earlier_prompts_of_same_stage():
    assert round_for(HISTORY, 1) == 1
    assert round_for(HISTORY, 2) == 2
    assert round_for(HISTORY, 4) == 1
    assert round_for(HISTORY, 6) == 3


def test_round_for_explicit_stage():
    assert round_for(HISTORY, 6, stage="sub") == 2


def test_round_numbers_are_derived_not_stored():
    history = [dict(e) for e in HISTORY]
    history.pop(2)
    assert round_for(history, 5) == 2


def test_only_most_recent_prompt_is_latest():
    assert latest_prompt_index(HISTORY) == 6
    assert is_latest(HISTORY, 6)
    assert not any(is_latest(HISTORY, i) for i in range(6))


def test_latest_prompt_index_empty():
    assert latest_prompt_index([]) is None
    assert latest_prompt_index([_user()]) is None


def test_selection_groups_are_unique_per_stage_and_round():
    groups = [selection_group(HISTORY, i) for i in (1, 2, 4, 6)]
    assert groups == ["main-1", "main-2", "sub-1", "main-3"]
