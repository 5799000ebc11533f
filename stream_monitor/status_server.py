"""Diagnostics server exposing the persisted channel states."""
import logging
import threading

from flask import Flask, jsonify, request

logger = logging.getLogger(__name__)


class StatusServer:
    """Simple Flask-based server for inspecting channel state."""

    def __init__(self, config, store):
        """Initialize the status server."""
        self.config = config
        self.store = store
        self.app = Flask(__name__)
        self.server_thread = None
        self.running = False

        # Register routes
        self._register_routes()

    def _authorized(self):
        if not self.config.status_secret:
            return True
        return request.args.get("secret") == self.config.status_secret

    def _register_routes(self):
        """Register Flask routes."""

        @self.app.route("/health", methods=["GET"])
        def health_check():
            """Health check endpoint."""
            return jsonify({"status": "ok"}), 200

        @self.app.route("/channels", methods=["GET"])
        def list_channels():
            """Return every persisted channel snapshot."""
            if not self._authorized():
                logger.warning("Unauthorized status request")
                return jsonify({"error": "Unauthorized"}), 401

            states = self.store.load()
            return jsonify({channel_id: state.to_dict()
                            for channel_id, state in sorted(states.items())}), 200

        @self.app.route("/channels/<login>", methods=["GET"])
        def get_channel(login):
            """Return one channel snapshot."""
            if not self._authorized():
                logger.warning("Unauthorized status request")
                return jsonify({"error": "Unauthorized"}), 401

            state = self.store.load().get(login.lower())
            if state is None:
                return jsonify({"error": "Channel not found"}), 404
            return jsonify(state.to_dict()), 200

    def start(self):
        """Start the status server in a separate thread."""
        if self.running:
            logger.warning("Status server is already running")
            return

        if not self.config.status_enabled:
            logger.info("Status server is disabled by configuration")
            return

        if not self.config.status_secret:
            logger.warning("STATUS_SECRET is not set, channel state is readable by anyone")

        def run_server():
            logger.info("Starting status server on %s:%s",
                        self.config.status_host, self.config.status_port)
            self.app.run(
                host=self.config.status_host,
                port=self.config.status_port,
                debug=False,
                use_reloader=False,  # Disable reloader to avoid duplicate processes
                threaded=True
            )

        self.server_thread = threading.Thread(target=run_server, name="status-server")
        # Daemon thread so it exits when the monitor stops
        self.server_thread.daemon = True
        self.server_thread.start()
        self.running = True
        logger.info("Status server thread started")
