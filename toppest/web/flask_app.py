import logging
from flask import Flask, jsonify
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from config import config
from toppest import __version__
from toppest.errors import ToppestError
from toppest.database import get_store
from toppest.database.models import utcnow
from toppest.features.game_records import GameRecordService
from toppest.features.profiles import ProfileService
from toppest.features.purchases import PurchaseService
from toppest.features.quests import QuestService
from toppest.features.referrals import ReferralSystem
from toppest.features.tickets import TicketLedger
from toppest.security.sessions import SessionRegistry
from .routes import configure_routes

logger = logging.getLogger(__name__)


class Services:
    """Engine components wired to one store"""

    def __init__(self, store, clock=utcnow):
        self.store = store
        self.quests = QuestService(store, clock=clock)
        self.referrals = ReferralSystem(store, clock=clock, quests=self.quests)
        self.tickets = TicketLedger(store, clock=clock)
        self.sessions = SessionRegistry(store, clock=clock)
        self.profiles = ProfileService(store, self.referrals, clock=clock)
        self.games = GameRecordService(store, self.sessions, self.referrals, quests=self.quests, clock=clock)
        self.purchases = PurchaseService(store, self.tickets, self.referrals, quests=self.quests)


def create_app(store=None, services=None):
    app = Flask(__name__)
    app.config['SECRET_KEY'] = config.SECRET_KEY
    CORS(app, origins="*")

    services = services or Services(store or get_store())
    app.extensions['toppest'] = services

    @app.route('/health')
    def health_check():
        store_ok = services.store.ping()
        return jsonify({
            "status": "running" if store_ok else "degraded",
            "service": "Toppest",
            "version": __version__,
            "store": services.store.name,
            "store_ok": store_ok
        }), 200 if store_ok else 503

    @app.after_request
    def add_security_headers(response):
        response.headers['X-Content-Type-Options'] = 'nosniff'
        response.headers['X-Frame-Options'] = 'DENY'
        return response

    @app.errorhandler(ToppestError)
    def handle_engine_error(e):
        if e.status_code >= 500:
            logger.error(f"{e.__class__.__name__}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify({'success': False, 'error': e.description}), e.code

    @app.errorhandler(Exception)
    def internal_error(e):
        logger.exception(f"Unhandled error: {str(e)}")
        return jsonify({'success': False, 'error': 'Internal server error'}), 500

    configure_routes(app, services)

    return app
