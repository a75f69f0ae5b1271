"""Linear Weather Agent — a Linear agent that answers weather and time questions.

Architecture Overview
=====================

Each Linear agent-session prompt starts one *session turn*: a LangGraph
state machine that repeatedly calls Claude with the full conversation and
reports every step back to Linear as an agent activity.

1. **agent** — Calls the model (no native tool binding). The model answers
   in a small text protocol: every reply starts with one of ``THINKING:``,
   ``ACTION:``, ``RESPONSE:``, ``ELICITATION:`` or ``ERROR:``.

2. **act** — For ``ACTION: tool(args)`` replies, runs exactly one tool and
   feeds ``Tool result: ...`` back into the conversation.

Routing: guard → agent → (thought/action?) → act/pause → guard
(loop until a response, question or error, or until the iteration cap).

Key Design Decisions
--------------------
- **Text protocol instead of tool calling**: each reply maps to exactly one
  Linear activity, so what users see in Linear is what the model wrote.
- **Two-phase actions**: an action is published once when it starts and once
  more with its result, so Linear shows live progress.
- **Tools never raise**: upstream failures (Nominatim, Open-Meteo,
  timeapi.io) come back as text the model can react to; only malformed model
  output or a failed model call ends a turn early.
- **Resilience**: the HTTP clients retry timeouts and 5xx responses with
  exponential backoff (3 attempts); the loop itself never retries.
- **Credentials**: OAuth tokens are stored per workspace behind an injected
  token store and refreshed shortly before they expire.
- **Dual Interface**: FastAPI server (Linear webhooks) + CLI (development).

Package Structure
-----------------
- ``src/agent.py`` — LangGraph session loop
- ``src/activities.py`` — activity models and session statuses
- ``src/classifier.py`` — model reply → activity
- ``src/executor.py`` — action parameter parsing and tool dispatch
- ``src/config.py`` — Centralized configuration from environment variables
- ``src/prompts.py`` — System prompt built from the tool registry
- ``src/sinks.py`` — where activities are published (console, memory)
- ``src/server.py`` — FastAPI application
- ``src/main.py`` — CLI interface
- ``src/services/`` — Linear, OAuth, webhook and open-data API clients
- ``src/tools/`` — LangChain tools and the tool registry
- ``src/api/`` — FastAPI routes and Pydantic schemas
"""
