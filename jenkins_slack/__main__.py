"""Package entry point for ``python -m jenkins_slack``.

WHY: Operators run the bot as ``python -m jenkins_slack`` and the callback
API as ``python -m jenkins_slack --api``; both need the same settings.

RULES:
- ``--api`` starts the FastAPI callback server
- Without ``--api``, starts the Socket Mode bot
"""

import sys

if __name__ == "__main__":
    if "--api" in sys.argv:
        from jenkins_slack.server.app import run_api
        run_api()
    else:
        from jenkins_slack.slack.bot import main
        main()
