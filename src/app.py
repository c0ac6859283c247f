"""
Flask JSON API for the bracket engine.
"""
import os
import logging

from flask import Flask, request, jsonify

from bracket_engine.bracket import build_bracket
from bracket_engine.config import DATA_DIR, load_settings
from bracket_engine.errors import TournamentError
from bracket_engine.pairings import generate_partner_rotation, generate_pool_pairings
from bracket_engine.pool_play import ranked_pool_standings
from bracket_engine.seeding import seed_pools
from bracket_engine.standings import StandingLine, rank_standings
from bracket_engine.store import YamlStore
from bracket_engine.service import TournamentService

app = Flask(__name__)
app.logger.setLevel(logging.INFO)

settings = load_settings()
service = TournamentService(
    YamlStore(os.path.join(DATA_DIR, 'store'),
              retries=settings['transaction_retries'],
              lock_timeout=settings['lock_timeout']),
    settings,
)


class BadRequest(TournamentError):
    """Malformed request body."""


@app.errorhandler(TournamentError)
def handle_tournament_error(error):
    if error.status >= 409:
        app.logger.warning(f'{error.kind}: {error.message}')
    return jsonify(error.to_dict()), error.status


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise BadRequest('Expected a JSON object body')
    return data


def _optional_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise BadRequest('Expected a JSON object body')
    return data


def _int_field(data, key, default=None, required=False):
    value = data.get(key, default)
    if value is None:
        if required:
            raise BadRequest(f'{key} is required')
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BadRequest(f'{key} must be an integer')


def _entry_list(data, key, id_key=None):
    """
    A list of non-empty strings, or of dicts carrying a non-empty string
    under ``id_key`` when one is given.
    """
    entries = data.get(key)
    if entries is None:
        return []
    if not isinstance(entries, list):
        raise BadRequest(f'{key} must be a list')
    for entry in entries:
        if isinstance(entry, dict) and id_key:
            value = entry.get(id_key)
        else:
            value = entry
        if not isinstance(value, str) or not value:
            expected = f'non-empty strings or objects with a string {id_key}' if id_key else 'non-empty strings'
            raise BadRequest(f'{key} must contain {expected}')
    return entries


_LINE_FIELDS = ('wins', 'losses', 'points_for', 'points_against', 'sets_won', 'sets_lost', 'matches_played')


def _standing_line(raw):
    if not isinstance(raw, dict) or raw.get('entrant_id') is None:
        raise BadRequest('every line must be an object with an entrant_id')
    line = dict(raw)
    for key in _LINE_FIELDS:
        line[key] = _int_field(raw, key, 0)
    line['seed'] = _int_field(raw, 'seed')
    return StandingLine.from_dict(line)


def _sets_field(data):
    sets = data.get('sets')
    if sets is None:
        return None
    if not isinstance(sets, list) or not all(isinstance(s, list) and len(s) == 2 for s in sets):
        raise BadRequest('sets must be a list of [score1, score2] pairs')
    try:
        return [(int(s[0]), int(s[1])) for s in sets]
    except (TypeError, ValueError):
        raise BadRequest('set scores must be integers')


@app.route('/api/health', methods=['GET'])
def api_health():
    return jsonify({'status': 'ok'})


@app.route('/api/pools/seed', methods=['POST'])
def api_seed_pools():
    """Snake seed a ranked entrant list into pools."""
    data = _json_body()
    entrants = _entry_list(data, 'entrants', 'id')
    pool_count = _int_field(data, 'pool_count', required=True)
    pools = seed_pools(entrants, pool_count, advance=_int_field(data, 'advance', 2))
    return jsonify({'pools': [p.to_dict() for p in pools]})


@app.route('/api/pools/pairings', methods=['POST'])
def api_pool_pairings():
    data = _json_body()
    members = _entry_list(data, 'members')
    pairing_format = data.get('format', 'round_robin')
    pool_id = data.get('pool_id')

    if pairing_format == 'round_robin':
        matches = generate_pool_pairings(members, pool_id=pool_id, rules=settings['match_rules'])
    elif pairing_format == 'partner_rotation':
        matches = generate_partner_rotation(members, pool_id=pool_id, rules=settings['kob_match_rules'])
    else:
        raise BadRequest(f'Unknown pairing format: {pairing_format}')
    return jsonify({'format': pairing_format, 'matches': [m.to_dict() for m in matches]})


@app.route('/api/bracket/suggest', methods=['GET'])
def api_suggest_format():
    teams = _int_field(request.args, 'teams', required=True)
    return jsonify(service.suggest_format(teams))


@app.route('/api/bracket/preview', methods=['POST'])
def api_preview_bracket():
    """Build a bracket without storing it."""
    data = _json_body()
    bracket = build_bracket(_entry_list(data, 'seeds', 'name'), data.get('format'),
                            rules_by_round=settings.get('playoff_rules'))
    return jsonify(bracket.to_dict())


@app.route('/api/standings/rank', methods=['POST'])
def api_rank_standings():
    data = _json_body()
    raw_lines = data.get('lines') or []
    if not isinstance(raw_lines, list):
        raise BadRequest('lines must be a list')
    lines = [_standing_line(raw) for raw in raw_lines]
    ranked = rank_standings(lines, _int_field(data, 'advance_count'))
    return jsonify({'standings': [line.to_dict() for line in ranked]})


@app.route('/api/tournaments/<tournament_id>/bracket', methods=['POST'])
def api_generate_bracket(tournament_id):
    data = _json_body()
    bracket = service.generate_bracket(tournament_id, _entry_list(data, 'seeds', 'name'), data.get('format'))
    app.logger.info(f'Generated bracket for {tournament_id} ({bracket.format})')
    return jsonify(bracket.to_dict()), 201


@app.route('/api/tournaments/<tournament_id>/bracket', methods=['GET'])
def api_get_bracket(tournament_id):
    return jsonify(service.get_bracket(tournament_id).to_dict())


@app.route('/api/tournaments/<tournament_id>/bracket/regenerate', methods=['POST'])
def api_regenerate_bracket(tournament_id):
    bracket = service.regenerate_bracket(tournament_id)
    app.logger.info(f'Regenerated bracket for {tournament_id}')
    return jsonify(bracket.to_dict())


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/result', methods=['POST'])
def api_record_bracket_result(tournament_id, match_id):
    data = _json_body()
    sets = _sets_field(data)
    if sets:
        result = service.record_bracket_result(tournament_id, match_id, set_scores=sets)
    else:
        result = service.record_bracket_result(
            tournament_id, match_id,
            _int_field(data, 'score1', required=True), _int_field(data, 'score2', required=True))
    return jsonify(result.to_dict())


@app.route('/api/tournaments/<tournament_id>/matches/<match_id>/result', methods=['DELETE'])
def api_clear_bracket_result(tournament_id, match_id):
    result = service.clear_bracket_result(tournament_id, match_id)
    return jsonify(result.to_dict())


def _pools_response(stage):
    data = stage.to_dict()
    data['standings'] = {name: [line.to_dict() for line in lines]
                         for name, lines in ranked_pool_standings(stage).items()}
    return data


@app.route('/api/tournaments/<tournament_id>/pools', methods=['POST'])
def api_create_pools(tournament_id):
    data = _json_body()
    stage = service.create_pools(
        tournament_id,
        _entry_list(data, 'teams', 'name'),
        pool_count=_int_field(data, 'pool_count'),
        pool_size=_int_field(data, 'pool_size'),
        advance_per_pool=_int_field(data, 'advance_per_pool'),
    )
    app.logger.info(f'Created {len(stage.pools)} pools for {tournament_id}')
    return jsonify(_pools_response(stage)), 201


@app.route('/api/tournaments/<tournament_id>/pools', methods=['GET'])
def api_get_pools(tournament_id):
    return jsonify(_pools_response(service.get_pools(tournament_id)))


@app.route('/api/tournaments/<tournament_id>/pools/matches/<match_id>/result', methods=['POST'])
def api_record_pool_result(tournament_id, match_id):
    data = _json_body()
    sets = _sets_field(data)
    if sets:
        stage = service.record_pool_result(tournament_id, match_id, set_scores=sets)
    else:
        stage = service.record_pool_result(
            tournament_id, match_id,
            _int_field(data, 'score1', required=True), _int_field(data, 'score2', required=True))
    match = stage.matches[match_id]
    return jsonify({'match': match.to_dict(), 'pool': stage.pools[match.pool_id].to_dict()})


@app.route('/api/tournaments/<tournament_id>/pools/matches/<match_id>/result', methods=['DELETE'])
def api_clear_pool_result(tournament_id, match_id):
    stage = service.clear_pool_result(tournament_id, match_id)
    match = stage.matches[match_id]
    return jsonify({'match': match.to_dict(), 'pool': stage.pools[match.pool_id].to_dict()})


@app.route('/api/tournaments/<tournament_id>/pools/advance', methods=['POST'])
def api_advance_to_playoffs(tournament_id):
    data = _optional_body()
    seeds, bracket = service.advance_to_playoffs(
        tournament_id, _int_field(data, 'advance_per_pool'), data.get('format'))
    app.logger.info(f'Advanced {tournament_id} to playoffs with {len(seeds)} teams')
    return jsonify({'seeds': seeds, 'bracket': bracket.to_dict()})


@app.route('/api/tournaments/<tournament_id>/kob', methods=['POST'])
def api_start_kob(tournament_id):
    data = _json_body()
    progression = service.start_kob(tournament_id, _entry_list(data, 'players', 'id'), _int_field(data, 'pool_size'))
    app.logger.info(f'Started KOB event {tournament_id} with {len(progression.entrants)} players')
    return jsonify(progression.to_dict()), 201


@app.route('/api/tournaments/<tournament_id>/kob', methods=['GET'])
def api_get_kob(tournament_id):
    progression = service.get_kob(tournament_id)
    data = progression.to_dict()
    data['leaderboard'] = service.kob_leaderboard(tournament_id)
    return jsonify(data)


@app.route('/api/tournaments/<tournament_id>/kob/matches/<match_id>/result', methods=['POST'])
def api_record_kob_result(tournament_id, match_id):
    data = _json_body()
    sets = _sets_field(data)
    if sets:
        progression = service.record_kob_result(tournament_id, match_id, set_scores=sets)
    else:
        progression = service.record_kob_result(
            tournament_id, match_id,
            _int_field(data, 'score1', required=True), _int_field(data, 'score2', required=True))
    return jsonify({
        'state': progression.state,
        'match': progression.matches[match_id].to_dict(),
    })


@app.route('/api/tournaments/<tournament_id>/kob/matches/<match_id>/result', methods=['DELETE'])
def api_clear_kob_result(tournament_id, match_id):
    progression = service.clear_kob_result(tournament_id, match_id)
    return jsonify({'state': progression.state, 'match': progression.matches[match_id].to_dict()})


@app.route('/api/tournaments/<tournament_id>/kob/advance', methods=['POST'])
def api_advance_kob(tournament_id):
    data = _optional_body()
    outcome = service.advance_kob(tournament_id, _int_field(data, 'advance_per_pool'), _int_field(data, 'pool_size'))
    app.logger.info(f'Advanced KOB event {tournament_id} (terminal={outcome.terminal})')
    return jsonify(outcome.to_dict())


if __name__ == '__main__':
    app.run(debug=True, port=5000)
