#!/usr/bin/env python3
"""
Entry point for the SkillArena service.

Usage:
    python run.py                    # Run the API server

Environment Variables:
    FLASK_ENV: development, production or testing (default: development)
    PORT: Port to run on (default: 5000)
    DATABASE_URL: SQLAlchemy database URL
    REDIS_URL: redis URL for presence and events (empty disables them)
    LOG_LEVEL: logging level (default: INFO, DEBUG in development)
"""
import os
import logging


def run_server():
    """Run the SkillArena API."""
    from skillarena.app import create_app

    app = create_app()
    logging.basicConfig(
        level=app.config['LOG_LEVEL'],
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )

    port = int(os.getenv('PORT', 5000))
    debug = os.getenv('FLASK_ENV', 'development') == 'development'

    logging.getLogger(__name__).info(f"Starting SkillArena on port {port}...")
    app.run(host='0.0.0.0', port=port, debug=debug)


if __name__ == '__main__':
    run_server()
