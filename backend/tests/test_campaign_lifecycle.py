"""
Tests for the Campaign Lifecycle Manager and its state machine.

Test Coverage:
1. State machine: transition table, terminal states, completed_at stamping
2. Create: staff only, company must exist and be active, field validation
3. Update: editable fields only, tenant never changes
4. Delete: refused while images or assignments exist
5. Status changes: guarded, InvalidTransition out of terminal states
6. Scoped reads: get, list, list_by_company, list_by_contractor
7. Read models: stats, progress
"""
from datetime import date, datetime, timedelta

import pytest

from app.errors import Conflict, Forbidden, InvalidTransition, NotFound, ValidationError
from app.models.db_models import CampaignDB, CampaignStatus, ImageDB, ImageStatus
from app.services.workflow import AssignmentRegistry, CampaignLifecycleManager, CampaignStateMachine


@pytest.fixture
def manager(db):
    return CampaignLifecycleManager(db)


@pytest.fixture
def registry(db):
    return AssignmentRegistry(db)


def add_image(db, campaign_id, uploaded_by, status=ImageStatus.PENDING):
    image = ImageDB(
        campaign_id=campaign_id,
        uploaded_by=uploaded_by,
        filename=f"{campaign_id}-{uploaded_by}.png",
        original_filename="proof.png",
        file_path="/tmp/none.png",
        file_size=10,
        mime_type="image/png",
        status=status,
    )
    db.add(image)
    db.commit()
    return image


# =============================================================================
# TEST: STATE MACHINE
# =============================================================================

class TestCampaignStateMachine:

    def setup_method(self):
        self.sm = CampaignStateMachine()

    @pytest.mark.parametrize("from_state,to_state", [
        (CampaignStatus.NEW, CampaignStatus.IN_PROGRESS),
        (CampaignStatus.NEW, CampaignStatus.CANCELLED),
        (CampaignStatus.IN_PROGRESS, CampaignStatus.COMPLETED),
        (CampaignStatus.IN_PROGRESS, CampaignStatus.CANCELLED),
    ])
    def test_allowed_transitions(self, from_state, to_state):
        allowed, _ = self.sm.can_transition(from_state, to_state)
        assert allowed is True

    def test_new_cannot_jump_to_completed(self):
        allowed, reason = self.sm.can_transition(CampaignStatus.NEW, CampaignStatus.COMPLETED)
        assert allowed is False
        assert "new" in reason

    @pytest.mark.parametrize("terminal", [CampaignStatus.COMPLETED, CampaignStatus.CANCELLED])
    def test_terminal_states_admit_nothing(self, terminal):
        assert self.sm.is_terminal_state(terminal)
        assert self.sm.get_next_states(terminal) == []
        for target in CampaignStatus:
            with pytest.raises(InvalidTransition):
                self.sm.transition(terminal, target)

    def test_completion_stamps_completed_at(self):
        now = datetime(2026, 3, 1, 12, 0)
        changes = self.sm.transition(CampaignStatus.IN_PROGRESS, CampaignStatus.COMPLETED, now=now)
        assert changes["status"] == CampaignStatus.COMPLETED
        assert changes["completed_at"] == now

    def test_cancellation_does_not_stamp_completed_at(self):
        changes = self.sm.transition(CampaignStatus.NEW, CampaignStatus.CANCELLED)
        assert "completed_at" not in changes

    def test_terminal_states_refuse_assignments(self):
        assert self.sm.accepts_assignments(CampaignStatus.NEW)
        assert self.sm.accepts_assignments(CampaignStatus.IN_PROGRESS)
        assert not self.sm.accepts_assignments(CampaignStatus.COMPLETED)
        assert not self.sm.accepts_assignments(CampaignStatus.CANCELLED)


# =============================================================================
# TEST: CREATE / UPDATE / DELETE
# =============================================================================

class TestCreateCampaign:

    def test_staff_creates_new_campaign(self, manager, world):
        campaign = manager.create(world.staff_id, name="Spring Billboards", company_id=world.acme.id)
        assert campaign.status == CampaignStatus.NEW
        assert campaign.completed_at is None
        assert campaign.created_by == world.staff.id

    @pytest.mark.parametrize("who", ["acme_id", "t1_id"])
    def test_non_staff_cannot_create(self, manager, world, who):
        with pytest.raises(Forbidden):
            manager.create(getattr(world, who), name="Nope", company_id=world.acme.id)

    def test_unknown_company_is_not_found(self, manager, world):
        with pytest.raises(NotFound):
            manager.create(world.staff_id, name="Ghost", company_id=9999)

    def test_inactive_company_is_conflict(self, manager, world):
        with pytest.raises(Conflict):
            manager.create(world.staff_id, name="Dormant", company_id=world.dormant.id)

    @pytest.mark.parametrize("name", ["", "   ", "x" * 256])
    def test_name_validation(self, manager, world, name):
        with pytest.raises(ValidationError):
            manager.create(world.staff_id, name=name, company_id=world.acme.id)

    def test_description_length(self, manager, world):
        with pytest.raises(ValidationError):
            manager.create(world.staff_id, name="Long", company_id=world.acme.id, description="d" * 1001)

    def test_end_date_must_follow_start_date(self, manager, world):
        with pytest.raises(ValidationError):
            manager.create(
                world.staff_id,
                name="Backwards",
                company_id=world.acme.id,
                start_date=date(2026, 5, 1),
                end_date=date(2026, 5, 1),
            )


class TestUpdateCampaign:

    def test_staff_updates_name_and_dates(self, manager, world):
        campaign = manager.create(world.staff_id, name="Draft", company_id=world.acme.id)
        updated = manager.update(campaign.id, {
            "name": "  Final  ",
            "start_date": date(2026, 6, 1),
            "end_date": date(2026, 6, 30),
        }, world.staff_id)
        assert updated.name == "Final"
        assert updated.end_date == date(2026, 6, 30)

    def test_company_cannot_change(self, manager, world):
        campaign = manager.create(world.staff_id, name="Tenant", company_id=world.acme.id)
        with pytest.raises(ValidationError):
            manager.update(campaign.id, {"company_id": world.globex.id}, world.staff_id)

    def test_same_company_id_is_accepted(self, manager, world):
        campaign = manager.create(world.staff_id, name="Tenant", company_id=world.acme.id)
        updated = manager.update(campaign.id, {"company_id": world.acme.id, "name": "Renamed"}, world.staff_id)
        assert updated.company_id == world.acme.id
        assert updated.name == "Renamed"

    def test_status_goes_through_change_status(self, manager, world):
        campaign = manager.create(world.staff_id, name="Sneaky", company_id=world.acme.id)
        with pytest.raises(ValidationError):
            manager.update(campaign.id, {"status": CampaignStatus.COMPLETED}, world.staff_id)

    def test_dates_validated_against_stored_values(self, manager, world):
        campaign = manager.create(
            world.staff_id, name="Dated", company_id=world.acme.id,
            start_date=date(2026, 6, 1), end_date=date(2026, 6, 30),
        )
        with pytest.raises(ValidationError):
            manager.update(campaign.id, {"end_date": date(2026, 5, 1)}, world.staff_id)

    def test_client_cannot_update_own_campaign(self, manager, world):
        campaign = manager.create(world.staff_id, name="Mine", company_id=world.acme.id)
        with pytest.raises(Forbidden) as exc_info:
            manager.update(campaign.id, {"name": "Hacked"}, world.acme_id)
        assert exc_info.value.out_of_scope is False


class TestDeleteCampaign:

    def test_delete_empty_campaign(self, manager, world, db):
        campaign = manager.create(world.staff_id, name="Temp", company_id=world.acme.id)
        campaign_id = campaign.id
        manager.delete(campaign_id, world.staff_id)
        assert db.query(CampaignDB).filter(CampaignDB.id == campaign_id).first() is None

    def test_delete_with_assignment_is_conflict(self, manager, registry, world):
        campaign = manager.create(world.staff_id, name="Staffed", company_id=world.acme.id)
        registry.assign(campaign.id, world.t1.id, world.staff_id)
        with pytest.raises(Conflict):
            manager.delete(campaign.id, world.staff_id)

    def test_delete_with_images_is_conflict(self, manager, world, db):
        campaign = manager.create(world.staff_id, name="Evidence", company_id=world.acme.id)
        add_image(db, campaign.id, world.t1.id)
        with pytest.raises(Conflict):
            manager.delete(campaign.id, world.staff_id)

    def test_delete_missing_is_not_found(self, manager, world):
        with pytest.raises(NotFound):
            manager.delete(424242, world.staff_id)


# =============================================================================
# TEST: STATUS CHANGES
# =============================================================================

class TestChangeStatus:

    def test_full_lifecycle(self, manager, world):
        campaign = manager.create(world.staff_id, name="Run", company_id=world.acme.id)
        campaign = manager.change_status(campaign.id, CampaignStatus.IN_PROGRESS, world.staff_id)
        assert campaign.status == CampaignStatus.IN_PROGRESS
        assert campaign.completed_at is None

        campaign = manager.change_status(campaign.id, "completed", world.staff_id)
        assert campaign.status == CampaignStatus.COMPLETED
        assert campaign.completed_at is not None

    def test_in_progress_without_assignments(self, manager, world):
        campaign = manager.create(world.staff_id, name="Unstaffed", company_id=world.acme.id)
        campaign = manager.change_status(campaign.id, CampaignStatus.IN_PROGRESS, world.staff_id)
        assert campaign.status == CampaignStatus.IN_PROGRESS

    def test_completion_not_blocked_by_pending_images(self, manager, world, db):
        campaign = manager.create(world.staff_id, name="Busy", company_id=world.acme.id)
        manager.change_status(campaign.id, CampaignStatus.IN_PROGRESS, world.staff_id)
        add_image(db, campaign.id, world.t1.id, ImageStatus.PENDING)
        campaign = manager.change_status(campaign.id, CampaignStatus.COMPLETED, world.staff_id)
        assert campaign.status == CampaignStatus.COMPLETED

    @pytest.mark.parametrize("terminal", [CampaignStatus.COMPLETED, CampaignStatus.CANCELLED])
    def test_no_transition_out_of_terminal_state(self, manager, world, terminal):
        campaign = manager.create(world.staff_id, name="Done", company_id=world.acme.id)
        manager.change_status(campaign.id, CampaignStatus.IN_PROGRESS, world.staff_id)
        manager.change_status(campaign.id, terminal, world.staff_id)
        with pytest.raises(InvalidTransition):
            manager.change_status(campaign.id, CampaignStatus.IN_PROGRESS, world.staff_id)

    def test_invalid_transition_is_a_conflict(self, manager, world):
        campaign = manager.create(world.staff_id, name="Skip", company_id=world.acme.id)
        with pytest.raises(Conflict):
            manager.change_status(campaign.id, CampaignStatus.COMPLETED, world.staff_id)

    def test_unknown_status_is_validation_error(self, manager, world):
        campaign = manager.create(world.staff_id, name="Typo", company_id=world.acme.id)
        with pytest.raises(ValidationError):
            manager.change_status(campaign.id, "finished", world.staff_id)

    def test_stale_read_loses_the_race(self, manager, world, session_factory):
        """A second session holding the old status cannot also transition."""
        campaign = manager.create(world.staff_id, name="Race", company_id=world.acme.id)
        manager.change_status(campaign.id, CampaignStatus.IN_PROGRESS, world.staff_id)

        other = session_factory()
        try:
            stale = CampaignLifecycleManager(other)
            stale_row = other.query(CampaignDB).filter(CampaignDB.id == campaign.id).one()
            assert stale_row.status == CampaignStatus.IN_PROGRESS

            manager.change_status(campaign.id, CampaignStatus.COMPLETED, world.staff_id)

            with pytest.raises(InvalidTransition):
                stale.change_status(campaign.id, CampaignStatus.CANCELLED, world.staff_id)
        finally:
            other.close()

    def test_contractor_cannot_change_status(self, manager, registry, world):
        campaign = manager.create(world.staff_id, name="Mine", company_id=world.acme.id)
        registry.assign(campaign.id, world.t1.id, world.staff_id)
        with pytest.raises(Forbidden):
            manager.change_status(campaign.id, CampaignStatus.IN_PROGRESS, world.t1_id)


# =============================================================================
# TEST: SCOPED READS
# =============================================================================

class TestScopedReads:

    @pytest.fixture
    def campaigns(self, manager, registry, world):
        acme_one = manager.create(world.staff_id, name="Acme Highway", company_id=world.acme.id)
        acme_two = manager.create(world.staff_id, name="Acme Mall", company_id=world.acme.id,
                                  description="Indoor posters")
        globex_one = manager.create(world.staff_id, name="Globex Transit", company_id=world.globex.id)
        registry.assign(acme_one.id, world.t1.id, world.staff_id)
        registry.assign(globex_one.id, world.t1.id, world.staff_id)
        return acme_one, acme_two, globex_one

    def test_staff_sees_everything(self, manager, world, campaigns):
        assert {c.id for c in manager.list(world.staff_id)} == {c.id for c in campaigns}

    def test_client_sees_own_company_only(self, manager, world, campaigns):
        acme_one, acme_two, _ = campaigns
        assert {c.id for c in manager.list(world.acme_id)} == {acme_one.id, acme_two.id}

    def test_client_company_filter_cannot_widen_scope(self, manager, world, campaigns):
        assert manager.list(world.acme_id, company_id=world.globex.id) == []

    def test_contractor_sees_assigned_only(self, manager, world, campaigns):
        acme_one, _, globex_one = campaigns
        assert {c.id for c in manager.list(world.t1_id)} == {acme_one.id, globex_one.id}
        assert manager.list(world.t2_id) == []

    def test_newest_first(self, manager, world, campaigns):
        ids = [c.id for c in manager.list(world.staff_id)]
        assert ids == sorted(ids, reverse=True)

    def test_search_is_case_insensitive(self, manager, world, campaigns):
        _, acme_two, _ = campaigns
        assert [c.id for c in manager.list(world.staff_id, search="POSTERS")] == [acme_two.id]

    def test_search_treats_wildcards_literally(self, manager, world, campaigns):
        sale = manager.create(world.staff_id, name="50% Off Sale", company_id=world.acme.id)
        manager.create(world.staff_id, name="500 Flyers", company_id=world.acme.id)

        assert [c.id for c in manager.list(world.staff_id, search="50%")] == [sale.id]
        assert [c.id for c in manager.list(world.staff_id, search="%")] == [sale.id]
        assert manager.list(world.staff_id, search="_") == []
        assert manager.list(world.staff_id, search="\\") == []

    def test_limit_and_offset(self, manager, world, campaigns):
        first = manager.list(world.staff_id, limit=2)
        rest = manager.list(world.staff_id, limit=2, offset=2)
        assert len(first) == 2
        assert len(rest) == 1
        assert {c.id for c in first}.isdisjoint({c.id for c in rest})

    def test_get_foreign_campaign_is_forbidden_out_of_scope(self, manager, world, campaigns):
        _, _, globex_one = campaigns
        with pytest.raises(Forbidden) as exc_info:
            manager.get(globex_one.id, world.acme_id)
        assert exc_info.value.out_of_scope is True

    def test_get_unassigned_campaign_is_forbidden_for_contractor(self, manager, world, campaigns):
        _, acme_two, _ = campaigns
        with pytest.raises(Forbidden):
            manager.get(acme_two.id, world.t1_id)

    def test_get_missing_is_not_found(self, manager, world):
        with pytest.raises(NotFound):
            manager.get(31337, world.staff_id)

    def test_list_by_company(self, manager, world, campaigns):
        assert len(manager.list_by_company(world.acme.id, world.acme_id)) == 2
        with pytest.raises(Forbidden):
            manager.list_by_company(world.globex.id, world.acme_id)

    def test_list_by_contractor(self, manager, world, campaigns):
        assert len(manager.list_by_contractor(world.t1.id, world.staff_id)) == 2
        assert len(manager.list_by_contractor(world.t1.id, world.t1_id)) == 2
        with pytest.raises(Forbidden):
            manager.list_by_contractor(world.t1.id, world.t2_id)

    def test_list_by_contractor_for_client_stays_in_company(self, manager, world, campaigns):
        acme_one, _, _ = campaigns
        assert [c.id for c in manager.list_by_contractor(world.t1.id, world.acme_id)] == [acme_one.id]

    def test_client_completed_filter_only_last_month(self, manager, world, db):
        recent = manager.create(world.staff_id, name="Recent", company_id=world.acme.id)
        old = manager.create(world.staff_id, name="Old", company_id=world.acme.id)
        for campaign in (recent, old):
            manager.change_status(campaign.id, CampaignStatus.IN_PROGRESS, world.staff_id)
            manager.change_status(campaign.id, CampaignStatus.COMPLETED, world.staff_id)

        old_row = db.query(CampaignDB).filter(CampaignDB.id == old.id).one()
        old_row.completed_at = datetime.utcnow() - timedelta(days=60)
        db.commit()

        client_view = manager.list(world.acme_id, status=CampaignStatus.COMPLETED)
        staff_view = manager.list(world.staff_id, status=CampaignStatus.COMPLETED)
        assert [c.id for c in client_view] == [recent.id]
        assert {c.id for c in staff_view} == {recent.id, old.id}

    def test_reads_are_idempotent(self, manager, world, campaigns):
        for identity in (world.staff_id, world.acme_id, world.t1_id):
            first = [c.id for c in manager.list(identity)]
            second = [c.id for c in manager.list(identity)]
            assert first == second


# =============================================================================
# TEST: READ MODELS
# =============================================================================

class TestReadModels:

    def test_stats_counts_by_status(self, manager, world):
        one = manager.create(world.staff_id, name="One", company_id=world.acme.id)
        manager.create(world.staff_id, name="Two", company_id=world.globex.id)
        manager.change_status(one.id, CampaignStatus.CANCELLED, world.staff_id)

        stats = manager.stats(world.staff_id)
        assert stats["total"] == 2
        assert stats["by_status"]["new"] == 1
        assert stats["by_status"]["cancelled"] == 1
        assert stats["by_status"]["completed"] == 0

    def test_stats_is_staff_only(self, manager, world):
        with pytest.raises(Forbidden):
            manager.stats(world.acme_id)

    def test_progress_percentage(self, manager, registry, world, db):
        campaign = manager.create(world.staff_id, name="Progress", company_id=world.acme.id)
        registry.assign(campaign.id, world.t1.id, world.staff_id)
        add_image(db, campaign.id, world.t1.id, ImageStatus.APPROVED)
        add_image(db, campaign.id, world.t1.id, ImageStatus.REJECTED)
        add_image(db, campaign.id, world.t1.id, ImageStatus.PENDING)
        add_image(db, campaign.id, world.t1.id, ImageStatus.APPROVED)

        progress = manager.progress(campaign.id, world.acme_id)
        assert progress["total_images"] == 4
        assert progress["approved_images"] == 2
        assert progress["pending_images"] == 1
        assert progress["progress_percentage"] == 50.0
        assert progress["assigned_contractors"] == 1

    def test_progress_without_images(self, manager, world):
        campaign = manager.create(world.staff_id, name="Empty", company_id=world.acme.id)
        assert manager.progress(campaign.id, world.staff_id)["progress_percentage"] == 0

    def test_progress_respects_scope(self, manager, world):
        campaign = manager.create(world.staff_id, name="Private", company_id=world.acme.id)
        with pytest.raises(Forbidden):
            manager.progress(campaign.id, world.globex_id)
