import logging
import atexit

from config import config
from toppest.utils.logger import setup_logging
from toppest.database import initialize_store
from toppest.tasks.scheduled import start_scheduler_thread
from toppest.web.flask_app import create_app

logger = logging.getLogger(__name__)


def run_gunicorn(app, options):
    """Production-grade web server runner using Gunicorn"""
    from gunicorn.app.base import BaseApplication

    class FlaskApplication(BaseApplication):
        def __init__(self, application, opts):
            self.options = opts
            self.application = application
            super().__init__()

        def load_config(self):
            for key, value in self.options.items():
                self.cfg.set(key, value)

        def load(self):
            return self.application

    FlaskApplication(app, options).run()


def build_app():
    setup_logging()
    store = initialize_store()
    app = create_app(store)
    stop_scheduler = start_scheduler_thread(store)
    atexit.register(stop_scheduler.set)
    return app


def main():
    app = build_app()
    debug_mode = config.ENV != 'production'

    logger.info(f"🚀 Starting Toppest server on port {config.PORT}")
    logger.info(f"🔧 Debug mode: {'ON' if debug_mode else 'OFF'}")

    if debug_mode:
        app.run(host='0.0.0.0', port=config.PORT, debug=True, use_reloader=False)
    else:
        run_gunicorn(app, {
            'bind': f"0.0.0.0:{config.PORT}",
            'workers': 1,
            'threads': 8,
            'timeout': 30
        })


if __name__ == '__main__':
    main()
