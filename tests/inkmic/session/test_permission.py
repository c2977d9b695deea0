import pytest

from inkmic.session.permission import PermissionAction, PermissionState, PermissionStateMachine


class TestPermissionStateMachine:
    """Test the permission transition tables."""

    def test_initial_check_granted(self):
        """Should go straight to GRANTED when the checker agrees."""
        machine = PermissionStateMachine(lambda: True)

        assert machine.dispatch(PermissionAction.CHECK) is PermissionState.GRANTED

    def test_initial_check_not_granted(self):
        """Should move to NOT_REQUESTED when the checker refuses."""
        machine = PermissionStateMachine(lambda: False)

        assert machine.dispatch(PermissionAction.CHECK) is PermissionState.NOT_REQUESTED

    @pytest.mark.parametrize(
        "answer,expected",
        [
            (PermissionAction.USER_GRANTS, PermissionState.GRANTED),
            (PermissionAction.USER_DENIES, PermissionState.RATIONALE_NEEDED),
            (PermissionAction.USER_DENIES_PERMANENTLY, PermissionState.PERMANENTLY_DENIED),
        ],
    )
    def test_request_outcomes(self, answer, expected):
        """Should resolve a request according to the user's answer."""
        machine = PermissionStateMachine(lambda: False)
        machine.dispatch(PermissionAction.CHECK)
        machine.dispatch(PermissionAction.REQUEST)

        assert machine.dispatch(answer) is expected

    def test_rationale_acknowledged(self):
        """Should request again after the rationale is acknowledged."""
        machine = PermissionStateMachine(lambda: False)
        for action in (
            PermissionAction.CHECK,
            PermissionAction.REQUEST,
            PermissionAction.USER_DENIES,
        ):
            machine.dispatch(action)

        assert (
            machine.dispatch(PermissionAction.USER_ACKNOWLEDGES_RATIONALE)
            is PermissionState.REQUESTING
        )

    def test_check_detects_revocation(self):
        """Should leave GRANTED when the permission is revoked externally."""
        granted = [True]
        machine = PermissionStateMachine(lambda: granted[0])
        machine.dispatch(PermissionAction.CHECK)

        granted[0] = False

        assert machine.dispatch(PermissionAction.CHECK) is PermissionState.RATIONALE_NEEDED

    def test_check_detects_regrant(self):
        """Should leave PERMANENTLY_DENIED when granted from system settings."""
        granted = [False]
        machine = PermissionStateMachine(lambda: granted[0])
        for action in (
            PermissionAction.CHECK,
            PermissionAction.REQUEST,
            PermissionAction.USER_DENIES_PERMANENTLY,
        ):
            machine.dispatch(action)

        granted[0] = True

        assert machine.dispatch(PermissionAction.CHECK) is PermissionState.GRANTED

    def test_invalid_action_ignored(self):
        """Should ignore actions with no transition from the current state."""
        machine = PermissionStateMachine(lambda: True)

        assert machine.dispatch(PermissionAction.USER_GRANTS) is PermissionState.INITIAL
        assert machine.current is PermissionState.INITIAL

    def test_state_changes_published(self):
        """Should publish every state change to subscribers."""
        machine = PermissionStateMachine(lambda: False)
        seen = []
        machine.state.subscribe(seen.append)

        machine.dispatch(PermissionAction.CHECK)
        machine.dispatch(PermissionAction.REQUEST)

        assert seen == [PermissionState.NOT_REQUESTED, PermissionState.REQUESTING]
