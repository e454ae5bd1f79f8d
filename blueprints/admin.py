"""Operator screens for tournaments, teams and matches."""

from flask import (
    Blueprint,
    abort,
    current_app,
    flash,
    jsonify,
    redirect,
    render_template,
    request,
    url_for,
)

from data_api import DataAPIError, NOT_FOUND, INVALID
from models import MATCH_STATUSES, STATUS_LABELS, current_time

admin_bp = Blueprint('admin', __name__, url_prefix='/admin')

SCORE_FIELDS = {'a': 'team_a_score', 'b': 'team_b_score'}

# table -> (singular label, list ordering)
NAMED_TABLES = {
    'tournaments': ('Tournament', {'order_by': 'created_at', 'descending': True}),
    'teams': ('Team', {'order_by': 'name'}),
}


def _data_api():
    return current_app.extensions['data_api']


def _get_or_404(table: str, record_id: str) -> dict:
    try:
        return _data_api().get(table, record_id)
    except DataAPIError as exc:
        if exc.code == NOT_FOUND:
            abort(404)
        raise


@admin_bp.route('/')
def dashboard():
    return redirect(url_for('admin.matches'))


# ----------------------------------------------------------------------
# Tournaments and teams share the same name + logo form
# ----------------------------------------------------------------------
def _named_form_values() -> dict:
    return {
        'name': request.form.get('name', '').strip(),
        'logo_url': request.form.get('logo_url', '').strip() or None,
    }


def _list_named(table: str):
    label, ordering = NAMED_TABLES[table]
    api = _data_api()

    if request.method == 'POST':
        values = _named_form_values()
        if not values['name']:
            flash(f'{label} name is required', 'error')
            return redirect(url_for(f'admin.{table}'))
        try:
            api.insert(table, values)
            flash(f'{label} created successfully', 'success')
        except DataAPIError as exc:
            current_app.logger.error('Failed to create %s: %s', label.lower(), exc.message)
            flash(f'Error saving {label.lower()}', 'error')
        return redirect(url_for(f'admin.{table}'))

    try:
        records = api.select(table, **ordering)
    except DataAPIError as exc:
        current_app.logger.error('Failed to load %s: %s', table, exc.message)
        flash(f'Error loading {table}', 'error')
        records = []
    return render_template('admin/named_list.html', table=table, label=label, records=records, editing=None)


def _edit_named(table: str, record_id: str):
    label, ordering = NAMED_TABLES[table]
    api = _data_api()
    record = _get_or_404(table, record_id)

    if request.method == 'POST':
        values = _named_form_values()
        if not values['name']:
            flash(f'{label} name is required', 'error')
            return redirect(url_for(f'admin.edit_{table[:-1]}', record_id=record_id))
        values['updated_at'] = current_time()
        try:
            api.update(table, record_id, values)
            flash(f'{label} updated successfully', 'success')
        except DataAPIError as exc:
            current_app.logger.error('Failed to update %s %s: %s', label.lower(), record_id, exc.message)
            flash(f'Error saving {label.lower()}', 'error')
        return redirect(url_for(f'admin.{table}'))

    try:
        records = api.select(table, **ordering)
    except DataAPIError as exc:
        current_app.logger.error('Failed to load %s: %s', table, exc.message)
        flash(f'Error loading {table}', 'error')
        records = []
    return render_template('admin/named_list.html', table=table, label=label, records=records, editing=record)


def _delete_named(table: str, record_id: str):
    label, _ = NAMED_TABLES[table]
    try:
        _data_api().delete(table, record_id)
        flash(f'{label} deleted successfully', 'success')
    except DataAPIError as exc:
        current_app.logger.error('Failed to delete %s %s: %s', label.lower(), record_id, exc.message)
        flash(f'Error deleting {label.lower()}: {exc.message}', 'error')
    return redirect(url_for(f'admin.{table}'))


@admin_bp.route('/tournaments', methods=['GET', 'POST'])
def tournaments():
    return _list_named('tournaments')


@admin_bp.route('/tournaments/<record_id>/edit', methods=['GET', 'POST'])
def edit_tournament(record_id):
    return _edit_named('tournaments', record_id)


@admin_bp.route('/tournaments/<record_id>/delete', methods=['POST'])
def delete_tournament(record_id):
    return _delete_named('tournaments', record_id)


@admin_bp.route('/teams', methods=['GET', 'POST'])
def teams():
    return _list_named('teams')


@admin_bp.route('/teams/<record_id>/edit', methods=['GET', 'POST'])
def edit_team(record_id):
    return _edit_named('teams', record_id)


@admin_bp.route('/teams/<record_id>/delete', methods=['POST'])
def delete_team(record_id):
    return _delete_named('teams', record_id)


# ----------------------------------------------------------------------
# Matches
# ----------------------------------------------------------------------
def _match_form_errors(values: dict) -> list[str]:
    errors: list[str] = []
    if not values['tournament_id'] or not values['team_a_id'] or not values['team_b_id']:
        errors.append('Tournament, team A and team B are all required')
    elif values['team_a_id'] == values['team_b_id']:
        errors.append('The two teams must be different')
    if values['status'] not in MATCH_STATUSES:
        errors.append('Please choose a valid match status')
    return errors


def _match_form_values() -> dict:
    return {
        'tournament_id': request.form.get('tournament_id', '').strip(),
        'team_a_id': request.form.get('team_a_id', '').strip(),
        'team_b_id': request.form.get('team_b_id', '').strip(),
        'status': request.form.get('status', 'scheduled').strip(),
    }


def _render_matches(editing=None):
    api = _data_api()
    try:
        match_list = api.select('matches', order_by='created_at', descending=True)
        tournament_options = api.select('tournaments', order_by='name', embed=False)
        team_options = api.select('teams', order_by='name', embed=False)
    except DataAPIError as exc:
        current_app.logger.error('Failed to load matches: %s', exc.message)
        flash('Error loading matches', 'error')
        match_list, tournament_options, team_options = [], [], []

    return render_template(
        'admin/matches.html',
        matches=match_list,
        tournaments=tournament_options,
        teams=team_options,
        statuses=MATCH_STATUSES,
        status_labels=STATUS_LABELS,
        editing=editing,
    )


@admin_bp.route('/matches', methods=['GET', 'POST'])
def matches():
    if request.method == 'POST':
        values = _match_form_values()
        errors = _match_form_errors(values)
        if errors:
            for error in errors:
                flash(error, 'error')
            return redirect(url_for('admin.matches'))

        values.update(team_a_score=0, team_b_score=0)
        try:
            _data_api().insert('matches', values)
            flash('Match created successfully', 'success')
        except DataAPIError as exc:
            current_app.logger.error('Failed to create match: %s', exc.message)
            flash('Error saving match', 'error')
        return redirect(url_for('admin.matches'))

    return _render_matches()


@admin_bp.route('/matches/<match_id>/edit', methods=['GET', 'POST'])
def edit_match(match_id):
    match = _get_or_404('matches', match_id)

    if request.method == 'POST':
        values = _match_form_values()
        errors = _match_form_errors(values)
        if errors:
            for error in errors:
                flash(error, 'error')
            return redirect(url_for('admin.edit_match', match_id=match_id))

        values['updated_at'] = current_time()
        try:
            _data_api().update('matches', match_id, values)
            flash('Match updated successfully', 'success')
        except DataAPIError as exc:
            current_app.logger.error('Failed to update match %s: %s', match_id, exc.message)
            flash('Error saving match', 'error')
        return redirect(url_for('admin.matches'))

    return _render_matches(editing=match)


@admin_bp.route('/matches/<match_id>/delete', methods=['POST'])
def delete_match(match_id):
    try:
        _data_api().delete('matches', match_id)
        flash('Match deleted successfully', 'success')
    except DataAPIError as exc:
        current_app.logger.error('Failed to delete match %s: %s', match_id, exc.message)
        flash(f'Error deleting match: {exc.message}', 'error')
    return redirect(url_for('admin.matches'))


def adjust_score(api, match_id: str, side: str, increment: bool) -> dict:
    """Bump one side's score by one, never going below zero."""
    field = SCORE_FIELDS[side]
    match = api.get('matches', match_id)
    current_score = match[field]
    new_score = current_score + 1 if increment else max(0, current_score - 1)
    return api.update('matches', match_id, {field: new_score, 'updated_at': current_time()})


@admin_bp.route('/matches/<match_id>/score', methods=['POST'])
def update_score(match_id):
    """Score +/- buttons. Answers JSON for scripted clients, redirects for forms."""
    payload = request.get_json(silent=True) or request.form
    side = str(payload.get('side', '')).lower()
    delta = str(payload.get('delta', '')).strip()
    wants_json = request.is_json

    if side not in SCORE_FIELDS or delta not in ('1', '+1', '-1'):
        if wants_json:
            return jsonify({'ok': False, 'error': 'side must be a or b and delta must be +1 or -1'}), 400
        flash('Invalid score change', 'error')
        return redirect(url_for('admin.matches'))

    api = _data_api()
    try:
        match = adjust_score(api, match_id, side, increment=not delta.startswith('-'))
    except DataAPIError as exc:
        current_app.logger.error('Failed to update score for match %s: %s', match_id, exc.message)
        # discard the attempted change by re-reading the stored record
        try:
            authoritative = api.get('matches', match_id)
        except DataAPIError:
            authoritative = None
        status_code = 404 if exc.code == NOT_FOUND else 400 if exc.code == INVALID else 500
        if wants_json:
            return jsonify({'ok': False, 'error': 'Error updating score', 'match': authoritative}), status_code
        flash('Error updating score', 'error')
        return redirect(url_for('admin.matches'))

    team = match['team_a'] if side == 'a' else match['team_b']
    team_name = team['name'] if team else f'Team {side.upper()}'
    if wants_json:
        return jsonify({'ok': True, 'match': match})
    flash(f"Score updated - {team_name}: {match[SCORE_FIELDS[side]]}", 'success')
    return redirect(url_for('admin.matches'))
