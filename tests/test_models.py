"""Model tests for tournaments, teams and matches."""

import pytest

from models import db, Tournament, Team, Match, STATUS_LABELS, current_time


class TestTournamentModel:
    def test_tournament_creation_sets_timestamps(self, flask_app):
        tournament = Tournament(name='  Spring Cup  ')
        db.session.add(tournament)
        db.session.commit()

        stored = Tournament.query.filter_by(name='Spring Cup').first()
        assert stored is not None
        assert len(stored.id) == 36
        assert stored.created_at is not None
        assert stored.updated_at is not None
        assert stored.logo_url is None

    def test_tournament_requires_name(self):
        with pytest.raises(ValueError):
            Tournament(name='   ')

    def test_tournament_record(self, tournament):
        record = tournament.to_record()
        assert record['name'] == 'Test Tournament'
        assert record['logo_url'] == 'https://example.com/cup.png'
        assert set(record) == {'id', 'name', 'logo_url', 'created_at', 'updated_at'}


class TestTeamModel:
    def test_team_requires_name(self):
        with pytest.raises(ValueError):
            Team(name='')

    def test_display_fields(self, team):
        assert team.display_fields() == {'name': 'Test Team', 'logo_url': 'https://example.com/a.png'}


class TestMatchModel:
    def test_match_defaults(self, flask_app, team, team2):
        match = Match(team_a_id=team.id, team_b_id=team2.id)
        db.session.add(match)
        db.session.commit()

        assert match.team_a_score == 0
        assert match.team_b_score == 0
        assert match.status == 'scheduled'
        assert match.tournament_id is None
        assert match.match_date is not None

    def test_match_teams_must_differ(self, team):
        with pytest.raises(ValueError):
            Match(team_a_id=team.id, team_b_id=team.id)

    def test_match_rejects_negative_scores(self):
        with pytest.raises(ValueError):
            Match(team_a_score=-1)

    def test_match_rejects_unknown_status(self):
        with pytest.raises(ValueError):
            Match(status='postponed')

    def test_empty_team_reference_is_stored_as_null(self, team):
        match = Match(team_a_id=team.id, team_b_id='')
        assert match.team_b_id is None

    def test_status_label_and_live_flag(self, make_match):
        match = make_match(status='live')
        assert match.is_live is True
        assert match.status_label == STATUS_LABELS['live']

    def test_to_record_embeds_relations(self, match):
        record = match.to_record()
        assert record['team_a']['name'] == 'Test Team'
        assert record['team_b']['name'] == 'Second Team'
        assert record['tournament']['name'] == 'Test Tournament'
        assert record['updated_at'].startswith('2024-03-14T18:00')

    def test_to_record_without_relations(self, flask_app, team, team2):
        match = Match(team_a_id=team.id, team_b_id=team2.id)
        db.session.add(match)
        db.session.commit()

        record = match.to_record()
        assert record['tournament'] is None
        assert record['team_a']['name'] == 'Test Team'


def test_current_time_is_timezone_aware():
    assert current_time().tzinfo is not None
