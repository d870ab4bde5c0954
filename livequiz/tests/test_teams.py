import math

from django.test import TestCase

from livequiz import registry, state_machine, teams
from livequiz.errors import InvalidMode, InvalidTransition, NotHost
from livequiz.models import Participant

from .utils import HOST_ID, make_session


class AssignTeamsTests(TestCase):
    def setUp(self):
        self.session, self.players = make_session(players=["Ann", "Bo", "Cy", "Dee", "Eve"])

    def _teams_by_name(self):
        return {
            p.display_name: p.team_number
            for p in Participant.objects.filter(session=self.session)
        }

    def test_five_players_in_teams_of_four(self):
        state_machine.set_mode(self.session.id, HOST_ID, "teams", team_size=4)

        assignment = teams.assign_teams(self.session.id, HOST_ID)

        self.assertEqual(
            self._teams_by_name(),
            {"Ann": 1, "Bo": 1, "Cy": 1, "Dee": 1, "Eve": 2},
        )
        self.assertEqual(assignment, {p.id: n for p, n in zip(self.players, [1, 1, 1, 1, 2])})

    def test_partition_is_exhaustive_and_bounded(self):
        for team_size in (1, 2, 3, 5, 7):
            assignment = teams.partition(self.players, team_size)

            self.assertEqual(set(assignment), {p.id for p in self.players})
            team_count = math.ceil(len(self.players) / team_size)
            self.assertTrue(all(1 <= n <= team_count for n in assignment.values()))
            for number in range(1, team_count + 1):
                members = [pid for pid, n in assignment.items() if n == number]
                self.assertTrue(1 <= len(members) <= team_size)

    def test_partition_ignores_input_order(self):
        self.assertEqual(
            teams.partition(self.players, 2),
            teams.partition(list(reversed(self.players)), 2),
        )

    def test_assignment_is_idempotent(self):
        state_machine.set_mode(self.session.id, HOST_ID, "teams", team_size=2)

        first = teams.assign_teams(self.session.id, HOST_ID)
        second = teams.assign_teams(self.session.id, HOST_ID)

        self.assertEqual(first, second)

    def test_reassignment_after_new_join_recomputes_everyone(self):
        state_machine.set_mode(self.session.id, HOST_ID, "teams", team_size=2)
        teams.assign_teams(self.session.id, HOST_ID)
        registry.join(self.session.code, "Fay")

        assignment = teams.assign_teams(self.session.id, HOST_ID)

        self.assertEqual(sorted(assignment.values()), [1, 1, 2, 2, 3, 3])
        self.assertEqual(self._teams_by_name()["Fay"], 3)

    def test_single_mode_is_rejected(self):
        with self.assertRaises(InvalidMode):
            teams.assign_teams(self.session.id, HOST_ID)
        self.assertTrue(all(n is None for n in self._teams_by_name().values()))

    def test_only_host_assigns(self):
        state_machine.set_mode(self.session.id, HOST_ID, "teams")
        with self.assertRaises(NotHost):
            teams.assign_teams(self.session.id, "ann-user")

    def test_only_in_lobby(self):
        state_machine.set_mode(self.session.id, HOST_ID, "teams")
        state_machine.start(self.session.id, HOST_ID)
        with self.assertRaises(InvalidTransition):
            teams.assign_teams(self.session.id, HOST_ID)
