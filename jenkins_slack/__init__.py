"""Jenkins chat-ops bot: trigger and monitor Jenkins jobs from Slack.

WHY: Teams want to kick off builds, fetch logs and artifacts, and manage
Jenkins jobs without leaving the channel where the work is discussed. This
package mediates one Slack request to one Jenkins job's lifecycle and
reports the result back to the channel.

HOW: Four layers: core (job-name parser, credential vault), api
(client adapter, trigger-and-poll engine), slack (slash command bot,
response dispatcher), server (HTTP callbacks for modal submissions).
Each layer is independently testable.

RULES:
- Jenkins API tokens are stored encrypted, never logged in plaintext
- Every Jenkins call is made with the calling user's own credentials
- One slash command = one handling thread; polling blocks only that thread
"""

__version__ = "0.1.0"
