from editorial.core.role_matrix import can_perform_action, normalize_roles


def test_normalize_roles_trims_and_drops_empty() -> None:
    roles = normalize_roles(["Editor", " Admin ", "", None])
    assert roles == {"editor", "admin"}
    assert normalize_roles("reviewer") == {"reviewer"}
    assert normalize_roles(None) == set()


def test_admin_has_global_action_access() -> None:
    assert can_perform_action(action="reviewer:assign", roles=["admin"]) is True
    assert can_perform_action(action="unknown:anything", roles="admin") is True


def test_editor_roles_can_assign_reviewers() -> None:
    for role in ("editor", "associate_editor", "chief_editor"):
        assert can_perform_action(action="reviewer:assign", roles=role) is True
    assert can_perform_action(action="reviewer:assign", roles="reviewer") is False
    assert can_perform_action(action="reviewer:assign", roles="author") is False


def test_editorial_assistant_screens_but_cannot_assign_reviewers() -> None:
    assert can_perform_action(action="submission:screen", roles="editorial_assistant") is True
    assert can_perform_action(action="editor:assign_associate", roles="editorial_assistant") is True
    assert can_perform_action(action="reviewer:assign", roles="editorial_assistant") is False


def test_status_change_actions_by_role() -> None:
    assert can_perform_action(action="submission:withdraw", roles="author") is True
    assert can_perform_action(action="submission:update_status", roles="author") is False
    assert can_perform_action(action="submission:update_status", roles="reviewer") is False
    for role in ("editorial_assistant", "associate_editor", "editor", "chief_editor"):
        assert can_perform_action(action="submission:update_status", roles=role) is True
