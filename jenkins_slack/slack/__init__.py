"""Slack integration for the Jenkins bot.

WHY: Users drive Jenkins from a Slack channel. This package turns the
`/jenkins` slash command and the bot's modals into Jenkins operations and
posts the results back.

HOW: The bot runs as a Socket Mode process (slack-bolt). Slash commands
are handled in-process by CommandHandler; modal submissions are forwarded
with httpx to the FastAPI callback API, which runs as a separate process.

RULES:
- All Slack events must be ack()'d within 3 seconds
- Every message goes out through ResponseDispatcher
- Socket Mode requires SLACK_BOT_TOKEN and SLACK_APP_TOKEN
"""
