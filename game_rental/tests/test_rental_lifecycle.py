import unittest
from datetime import date, timedelta
from unittest import mock

from rental_fixtures import SessionLocal, make_game, make_user, reset_schema

from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError

from models.enums import OPEN_RENTAL_STATES, RentalStatus, SubscriptionPlan
from models.rental_models import Rental
from schemas.rentals import CreateRentalDto, UpdateRentalDto
from services.exceptions import (
    GameNotAvailableError,
    GameNotFoundError,
    PlanLimitExceededError,
    RentalAlreadyClosedError,
    RentalNotFoundError,
)
from services.rental_service import (
    RENEWAL_DAYS,
    RENTAL_PERIOD_DAYS,
    cancel_rental,
    check_for_late_rentals,
    create_rental,
    delete_rental,
    get_rental,
    list_rentals,
    list_rentals_by_game_title,
    list_rentals_by_status,
    list_rentals_by_user_name,
    mark_rentals_late,
    renew_rental,
    return_rental,
    serialize_rental,
    update_rental,
)


class RentalLifecycleTests(unittest.TestCase):
    def setUp(self):
        reset_schema()
        self.db = SessionLocal()
        self.today = date.today()

    def tearDown(self):
        self.db.close()

    def _rent(self, game, user, today=None):
        return create_rental(self.db, CreateRentalDto(gameID=game.GameID, userID=user.UserID), today=today)

    def _rental_count(self) -> int:
        return self.db.execute(select(func.count()).select_from(Rental)).scalar()

    def _open_rentals_of(self, user) -> int:
        return self.db.execute(
            select(func.count())
            .select_from(Rental)
            .where(Rental.UserID == user.UserID, Rental.Status.in_(list(OPEN_RENTAL_STATES)))
        ).scalar()

    def test_create_rental_moves_both_counters(self):
        game = make_game(self.db, quantity=1)
        user = make_user(self.db, plan=SubscriptionPlan.NOOB)

        rental = self._rent(game, user)
        self.db.refresh(game)
        self.db.refresh(user)

        self.assertEqual(game.Quantity, 0)
        self.assertFalse(game.Available)
        self.assertEqual(user.ActiveRentals, 1)
        self.assertEqual(rental.Status, RentalStatus.ACTIVE)
        self.assertEqual(rental.RentalDate, self.today)
        self.assertEqual(rental.EndDate, rental.RentalDate + timedelta(days=RENTAL_PERIOD_DAYS))

    def test_return_restores_counters_and_closes_rental(self):
        game = make_game(self.db, quantity=1)
        user = make_user(self.db)
        rental = self._rent(game, user, today=self.today - timedelta(days=3))

        returned = return_rental(self.db, rental.RentalID, today=self.today)
        self.db.refresh(game)
        self.db.refresh(user)

        self.assertEqual(game.Quantity, 1)
        self.assertTrue(game.Available)
        self.assertEqual(user.ActiveRentals, 0)
        self.assertEqual(returned.Status, RentalStatus.RETURNED)
        self.assertEqual(returned.EndDate, self.today)

    def test_cancel_has_same_counter_effects_as_return(self):
        game = make_game(self.db, quantity=2)
        user = make_user(self.db, plan=SubscriptionPlan.PRO)
        rental = self._rent(game, user)

        cancelled = cancel_rental(self.db, rental.RentalID)
        self.db.refresh(game)
        self.db.refresh(user)

        self.assertEqual(cancelled.Status, RentalStatus.CANCELLED)
        self.assertEqual(cancelled.EndDate, self.today)
        self.assertEqual(game.Quantity, 2)
        self.assertEqual(user.ActiveRentals, 0)

    def test_second_rental_over_noob_limit_is_rejected_without_side_effects(self):
        first_game = make_game(self.db, title="Hades", quantity=1)
        second_game = make_game(self.db, title="Celeste", quantity=3)
        user = make_user(self.db, plan=SubscriptionPlan.NOOB)
        self._rent(first_game, user)

        with self.assertRaises(PlanLimitExceededError) as ctx:
            self._rent(second_game, user)
        self.assertEqual(ctx.exception.status_code, 422)

        self.db.refresh(second_game)
        self.db.refresh(user)
        self.assertEqual(second_game.Quantity, 3)
        self.assertEqual(user.ActiveRentals, 1)
        self.assertEqual(self._rental_count(), 1)

    def test_plan_limits_follow_subscription_tier(self):
        game = make_game(self.db, quantity=10)
        pro = make_user(self.db, name="Pro", email="pro@example.com", plan=SubscriptionPlan.PRO)
        legend = make_user(self.db, name="Legend", email="legend@example.com", plan=SubscriptionPlan.LEGEND)

        for _ in range(3):
            self._rent(game, pro)
        with self.assertRaises(PlanLimitExceededError):
            self._rent(game, pro)

        for _ in range(5):
            self._rent(game, legend)
        with self.assertRaises(PlanLimitExceededError):
            self._rent(game, legend)

        self.db.refresh(game)
        self.assertEqual(game.Quantity, 2)

    def test_unavailable_game_is_rejected_without_side_effects(self):
        game = make_game(self.db, quantity=1)
        user = make_user(self.db, plan=SubscriptionPlan.LEGEND)
        game.Quantity = 0
        self.db.commit()

        with self.assertRaises(GameNotAvailableError) as ctx:
            self._rent(game, user)
        self.assertEqual(ctx.exception.status_code, 409)
        self.assertIn("is not available for rental", ctx.exception.message)

        self.db.refresh(user)
        self.assertEqual(user.ActiveRentals, 0)
        self.assertEqual(self._rental_count(), 0)

    def _failing_commit(self):
        def _commit():
            self.db.flush()
            raise OperationalError("COMMIT", {}, Exception("disk I/O error"))

        return mock.patch.object(self.db, "commit", side_effect=_commit)

    def _stored_counters(self, game, user):
        with SessionLocal() as fresh:
            quantity = fresh.get(type(game), game.GameID).Quantity
            active = fresh.get(type(user), user.UserID).ActiveRentals
            rentals = fresh.execute(select(func.count()).select_from(Rental)).scalar()
        return quantity, active, rentals

    def test_failed_commit_on_create_leaves_counters_untouched(self):
        game = make_game(self.db, quantity=1)
        user = make_user(self.db)

        with self._failing_commit():
            with self.assertRaises(OperationalError):
                self._rent(game, user)

        self.assertEqual(self._stored_counters(game, user), (1, 0, 0))

    def test_failed_commit_on_return_or_cancel_keeps_rental_open(self):
        game = make_game(self.db, quantity=1)
        user = make_user(self.db)
        rental = self._rent(game, user)

        for transition in (return_rental, cancel_rental):
            with self.subTest(transition=transition.__name__):
                with self._failing_commit():
                    with self.assertRaises(OperationalError):
                        transition(self.db, rental.RentalID)

                self.assertEqual(self._stored_counters(game, user), (0, 1, 1))
                with SessionLocal() as fresh:
                    self.assertEqual(fresh.get(Rental, rental.RentalID).Status, RentalStatus.ACTIVE)

    def test_unknown_game_or_user_is_not_found(self):
        game = make_game(self.db)
        user = make_user(self.db)
        with self.assertRaises(GameNotFoundError):
            create_rental(self.db, CreateRentalDto(gameID=999, userID=user.UserID))
        with self.assertRaises(RentalNotFoundError):
            return_rental(self.db, 999)
        self.db.refresh(game)
        self.assertEqual(game.Quantity, 1)

    def test_closed_rentals_reject_every_transition(self):
        game = make_game(self.db, quantity=2)
        user = make_user(self.db, plan=SubscriptionPlan.PRO)
        returned = self._rent(game, user)
        cancelled = self._rent(game, user)
        return_rental(self.db, returned.RentalID)
        cancel_rental(self.db, cancelled.RentalID)

        for rental_id in (returned.RentalID, cancelled.RentalID):
            for transition in (return_rental, cancel_rental, renew_rental):
                with self.assertRaises(RentalAlreadyClosedError):
                    transition(self.db, rental_id)
            with self.assertRaises(RentalAlreadyClosedError):
                update_rental(self.db, rental_id, UpdateRentalDto(gameID=game.GameID))

        self.db.refresh(game)
        self.db.refresh(user)
        self.assertEqual(game.Quantity, 2)
        self.assertEqual(user.ActiveRentals, 0)

    def test_renew_adds_seven_days_each_time(self):
        game = make_game(self.db)
        user = make_user(self.db)
        rental = self._rent(game, user)
        original_end = rental.EndDate

        renew_rental(self.db, rental.RentalID)
        renewed = renew_rental(self.db, rental.RentalID)

        self.assertEqual(renewed.EndDate, original_end + timedelta(days=2 * RENEWAL_DAYS))
        self.assertEqual(renewed.Status, RentalStatus.ACTIVE)

    def test_mark_rentals_late_flags_overdue_rentals_only(self):
        game = make_game(self.db, quantity=3)
        user = make_user(self.db, plan=SubscriptionPlan.PRO)
        overdue = self._rent(game, user, today=self.today - timedelta(days=20))
        boundary = self._rent(game, user, today=self.today - timedelta(days=RENTAL_PERIOD_DAYS))
        fresh = self._rent(game, user)

        marked = mark_rentals_late(self.db, today=self.today)

        self.assertEqual(marked, 1)
        self.assertEqual(get_rental(self.db, overdue.RentalID).Status, RentalStatus.LATE)
        self.assertEqual(get_rental(self.db, boundary.RentalID).Status, RentalStatus.ACTIVE)
        self.assertEqual(get_rental(self.db, fresh.RentalID).Status, RentalStatus.ACTIVE)

        self.db.refresh(user)
        self.db.refresh(game)
        self.assertEqual(user.ActiveRentals, 3)
        self.assertEqual(game.Quantity, 0)

    def test_mark_rentals_late_is_idempotent(self):
        game = make_game(self.db)
        user = make_user(self.db)
        rental = self._rent(game, user, today=self.today - timedelta(days=20))

        self.assertEqual(mark_rentals_late(self.db, today=self.today), 1)
        first_state = serialize_rental(get_rental(self.db, rental.RentalID))
        self.assertEqual(mark_rentals_late(self.db, today=self.today), 0)
        self.assertEqual(serialize_rental(get_rental(self.db, rental.RentalID)), first_state)

    def test_check_for_late_rentals_uses_its_own_session(self):
        game = make_game(self.db)
        user = make_user(self.db)
        rental = self._rent(game, user, today=self.today - timedelta(days=30))

        marked = check_for_late_rentals(SessionLocal, today=self.today)

        self.assertEqual(marked, 1)
        self.db.expire_all()
        self.assertEqual(get_rental(self.db, rental.RentalID).Status, RentalStatus.LATE)

    def test_late_rental_can_be_returned_but_not_renewed(self):
        game = make_game(self.db)
        user = make_user(self.db)
        rental = self._rent(game, user, today=self.today - timedelta(days=20))
        mark_rentals_late(self.db, today=self.today)

        with self.assertRaises(RentalAlreadyClosedError):
            renew_rental(self.db, rental.RentalID)

        returned = return_rental(self.db, rental.RentalID, today=self.today)
        self.db.refresh(game)
        self.db.refresh(user)
        self.assertEqual(returned.Status, RentalStatus.RETURNED)
        self.assertEqual(game.Quantity, 1)
        self.assertEqual(user.ActiveRentals, 0)

    def test_counters_stay_consistent_across_a_mixed_sequence(self):
        games = [make_game(self.db, title=f"Game {i}", quantity=2) for i in range(3)]
        users = [
            make_user(self.db, name=f"Player {i}", email=f"p{i}@example.com", plan=SubscriptionPlan.LEGEND)
            for i in range(2)
        ]
        rentals = []
        for game in games:
            for user in users:
                rentals.append(self._rent(game, user))
        return_rental(self.db, rentals[0].RentalID)
        cancel_rental(self.db, rentals[3].RentalID)
        self._rent(games[0], users[1])

        for game in games:
            self.db.refresh(game)
            self.assertEqual(game.Available, game.Quantity > 0)
            self.assertGreaterEqual(game.Quantity, 0)
        for user in users:
            self.db.refresh(user)
            self.assertEqual(user.ActiveRentals, self._open_rentals_of(user))

    def test_update_rental_reassigns_without_touching_counters(self):
        first = make_game(self.db, title="Tetris", quantity=1)
        second = make_game(self.db, title="Doom", quantity=1)
        user = make_user(self.db)
        rental = self._rent(first, user)

        updated = update_rental(self.db, rental.RentalID, UpdateRentalDto(gameID=second.GameID))
        self.db.refresh(first)
        self.db.refresh(second)

        self.assertEqual(updated.GameID, second.GameID)
        self.assertEqual(serialize_rental(updated)["gameTitle"], "Doom")
        self.assertEqual(first.Quantity, 0)
        self.assertEqual(second.Quantity, 1)

    def test_delete_rental_keeps_counters(self):
        game = make_game(self.db)
        user = make_user(self.db)
        rental = self._rent(game, user)

        delete_rental(self.db, rental.RentalID)
        self.db.refresh(game)
        self.db.refresh(user)

        self.assertEqual(self._rental_count(), 0)
        self.assertEqual(game.Quantity, 0)
        self.assertEqual(user.ActiveRentals, 1)

    def test_filters_and_empty_results(self):
        with self.assertRaises(RentalNotFoundError):
            list_rentals(self.db)

        game = make_game(self.db, title="Hollow Knight")
        user = make_user(self.db, name="Grace Hopper", email="grace@example.com")
        self._rent(game, user)

        self.assertEqual(len(list_rentals_by_user_name(self.db, "hopper")), 1)
        self.assertEqual(len(list_rentals_by_game_title(self.db, "KNIGHT")), 1)
        self.assertEqual(len(list_rentals_by_status(self.db, RentalStatus.ACTIVE)), 1)
        with self.assertRaises(RentalNotFoundError):
            list_rentals_by_status(self.db, RentalStatus.LATE)


if __name__ == "__main__":
    unittest.main()
