import logging
from flask import request, jsonify

from config import config
from toppest.errors import ClientError, NoTicketsRemaining
from toppest.features.rewards import get_reward_preview, format_reward
from toppest.utils.validators import validate_json_input, is_valid_sui_address, is_valid_game_type

logger = logging.getLogger(__name__)

DEFAULT_GAME_TYPE = 'dash-trials'


def _iso(value):
    return value.isoformat() if value is not None else None


def _query_address(name='address'):
    address = request.args.get(name)
    if not is_valid_sui_address(address):
        raise ClientError("Valid wallet address required", field=name)
    return address


def _query_game_type(required=False):
    game_type = request.args.get('game_type')
    if game_type is None and not required:
        return None
    if not is_valid_game_type(game_type):
        raise ClientError("Invalid game type", field='game_type')
    return game_type


def _query_int(name, default, minimum=1, maximum=100):
    raw = request.args.get(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError:
        raise ClientError(f"{name} must be an integer", field=name)
    return max(minimum, min(value, maximum))


def _profile_json(profile):
    return {
        'wallet_address': profile['wallet_address'],
        'nickname': profile.get('nickname', ''),
        'referral_code': profile.get('referral_code'),
        'referred_by': profile.get('referred_by'),
        'referral_count': profile.get('referral_count', 0),
        'total_club': profile.get('total_club', 0),
        'created_at': _iso(profile.get('created_at'))
    }


def _ticket_json(result):
    return {
        'success': result.get('success', False),
        'dailyTickets': result['daily_tickets'],
        'starTickets': result['star_tickets'],
        'totalTickets': result['total_tickets'],
        'usedType': result.get('used_type'),
        'ticketsUsed': result['tickets_used']
    }


def _ticket_status_json(status):
    return {
        'canPlay': status['can_play'],
        'dailyTickets': status['daily_tickets'],
        'maxDailyTickets': status['max_daily_tickets'],
        'starTickets': status['star_tickets'],
        'totalTickets': status['total_tickets'],
        'ticketsUsed': status['tickets_used'],
        'date': status['date']
    }


WALLET_RULE = {'required': True, 'type': 'str', 'format': 'sui_address'}
GAME_TYPE_RULE = {'required': True, 'type': 'str', 'format': 'game_type'}


def configure_routes(app, services):
    @app.route('/api/profile', methods=['POST'])
    @validate_json_input({
        'wallet_address': WALLET_RULE,
        'nickname': {'type': 'str'}
    })
    def ensure_profile():
        """Create the player's profile on first sign-in"""
        data = request.get_json()
        nickname = (data.get('nickname') or '').strip()[:32] or None
        profile, created = services.profiles.ensure_profile(data['wallet_address'], nickname)
        return jsonify({
            'success': True,
            'created': created,
            'profile': _profile_json(profile)
        }), 201 if created else 200

    @app.route('/api/profile', methods=['GET'])
    def get_profile():
        address = _query_address()
        profile = services.profiles.get_profile(address)
        status = services.tickets.check_status(address)
        body = _profile_json(profile)
        body['tickets'] = _ticket_status_json(status)
        return jsonify({'success': True, 'profile': body})

    @app.route('/api/game/session', methods=['POST'])
    @validate_json_input({
        'wallet_address': WALLET_RULE,
        'game_type': GAME_TYPE_RULE
    })
    def create_session():
        data = request.get_json()
        session = services.sessions.issue(data['wallet_address'], data['game_type'])
        return jsonify({
            'success': True,
            'session_token': session['session_token'],
            'expires_at': _iso(session['expires_at'])
        })

    @app.route('/api/game/start', methods=['POST'])
    @validate_json_input({
        'wallet_address': WALLET_RULE,
        'game_type': GAME_TYPE_RULE
    })
    def start_game():
        """Spend a ticket and open a session in one call"""
        data = request.get_json()
        try:
            session = services.sessions.start_game(data['wallet_address'], data['game_type'], services.tickets)
        except NoTicketsRemaining as e:
            body = _ticket_json(dict(e.details, success=False))
            body['error'] = e.message
            return jsonify(body), e.status_code

        body = _ticket_json(session['ticket'])
        body.update({
            'session_token': session['session_token'],
            'expires_at': _iso(session['expires_at'])
        })
        return jsonify(body)

    @app.route('/api/game/ticket', methods=['POST'])
    @validate_json_input({'wallet_address': WALLET_RULE})
    def use_ticket():
        data = request.get_json()
        try:
            result = services.tickets.consume(data['wallet_address'])
        except NoTicketsRemaining as e:
            body = _ticket_json(dict(e.details, success=False))
            body['error'] = e.message
            return jsonify(body), e.status_code
        return jsonify(_ticket_json(result))

    @app.route('/api/game/ticket', methods=['GET'])
    def get_ticket_status():
        address = _query_address()
        _query_game_type()
        status = services.tickets.check_status(address)
        body = _ticket_status_json(status)
        body['success'] = True
        body['clubBalance'] = services.games.get_total_club(address)
        return jsonify(body)

    @app.route('/api/game/record', methods=['POST'])
    @validate_json_input({
        'wallet_address': WALLET_RULE,
        'game_type': GAME_TYPE_RULE
    })
    def record_game():
        result = services.games.record_game(request.get_json())
        return jsonify({
            'success': True,
            'record': result['record'],
            'rewards': result['rewards'],
            'warnings': result['warnings']
        })

    @app.route('/api/game/record', methods=['GET'])
    def get_game_records():
        address = _query_address()
        game_type = _query_game_type()
        limit = _query_int('limit', 10)
        result = services.games.get_records(address, game_type=game_type, limit=limit)
        return jsonify({
            'success': True,
            'records': result['records'],
            'highScore': result['high_score']
        })

    @app.route('/api/game/leaderboard', methods=['GET'])
    def get_leaderboard():
        game_type = _query_game_type() or DEFAULT_GAME_TYPE
        time_filter = request.args.get('filter', 'weekly')
        limit = _query_int('limit', 50)
        user_address = request.args.get('address') or None
        if user_address is not None and not is_valid_sui_address(user_address):
            raise ClientError("Invalid wallet address", field='address')

        result = services.games.get_leaderboard(game_type, time_filter, user_address, limit)
        result['success'] = True
        return jsonify(result)

    @app.route('/api/game/rewards/preview', methods=['GET'])
    def reward_preview():
        game_type = _query_game_type() or DEFAULT_GAME_TYPE
        preview = get_reward_preview(game_type)
        for row in preview:
            row['formatted'] = format_reward(row['club'])
        return jsonify({'success': True, 'game_type': game_type, 'preview': preview})

    @app.route('/api/referral', methods=['POST'])
    @validate_json_input({
        'referrer': {'required': True, 'type': 'str'},
        'wallet_address': WALLET_RULE
    })
    def create_referral():
        data = request.get_json()
        result = services.referrals.create_referral(data['referrer'].strip(), data['wallet_address'])
        if not result['success']:
            logger.info(f"Referral rejected: {result['reason']}")
            return jsonify(result), 400
        return jsonify(result)

    @app.route('/api/referral', methods=['GET'])
    def get_referrals():
        wallet = _query_address('wallet')
        page = _query_int('page', 1, maximum=10000)
        limit = _query_int('limit', 20)

        services.profiles.get_profile(wallet)
        code = services.referrals.get_referral_code(wallet)

        result = services.referrals.get_referrals(wallet, page=page, limit=limit)
        result.update({
            'success': True,
            'referral_code': code,
            'referral_link': f"{config.APP_URL}?ref={code}",
            'stats': services.referrals.get_referral_stats(wallet)
        })
        return jsonify(result)

    @app.route('/api/shop/purchase/complete', methods=['POST'])
    @validate_json_input({
        'wallet_address': WALLET_RULE,
        'payment_id': {'required': True, 'type': 'str'},
        'star_tickets': {'required': True, 'type': 'int', 'min': 1},
        'usd_amount': {'type': 'float', 'min': 0}
    })
    def complete_purchase():
        """Verified payment hand-off from the payment processor"""
        data = request.get_json()
        result = services.purchases.complete_purchase(
            data['wallet_address'],
            data['payment_id'],
            data['star_tickets'],
            data.get('usd_amount') or 0
        )
        return jsonify(result)

    @app.route('/api/quests', methods=['GET'])
    def get_quests():
        address = _query_address()
        board = services.quests.get_quests(address)
        board['success'] = True
        return jsonify(board)

    @app.route('/api/quests/claim', methods=['POST'])
    @validate_json_input({
        'wallet_address': WALLET_RULE,
        'quest_id': {'required': True, 'type': 'str'}
    })
    def claim_quest():
        data = request.get_json()
        return jsonify(services.quests.claim(data['wallet_address'], data['quest_id']))
