import sys

from showpicks.core.config import settings
from showpicks.core.errors import WorkflowError
from showpicks.core.telemetry import get_telemetry
from showpicks.orchestration.workflow import run

# Initialize telemetry
telemetry = get_telemetry('main')

DEFAULT_PREFERENCES = "I like sci-fi shows with complex plots and strong character development"


def run_agent(preferences: str, *, as_json: bool = False, thread_id: str | None = None) -> int:
    """Run the recommendation workflow and print the result."""
    # same bounds the web form enforces; the workflow itself has none
    if not settings.MIN_INPUT_CHARS <= len(preferences) <= settings.MAX_INPUT_CHARS:
        print(f"Preferences must be between {settings.MIN_INPUT_CHARS} and {settings.MAX_INPUT_CHARS} characters.")
        return 2

    telemetry.log_info("Starting agent", preferences=preferences, thread_id=thread_id)
    print("\n--- SHOWPICKS AGENT ACTIVE ---")
    print(f"Preferences: {preferences}")

    try:
        result = run(preferences, thread_id=thread_id, as_json=as_json)
    except (WorkflowError, ValueError) as e:
        telemetry.log_error("Run failed", error=e)
        print(f"\nError: Failed to generate recommendations: {e}")
        return 1

    print("\n--- RECOMMENDATIONS ---\n")
    print(result)
    return 0


def serve(port: int = 8000) -> None:
    import uvicorn
    uvicorn.run("showpicks.api.server:app", host="0.0.0.0", port=port)


if __name__ == "__main__":
    # simple cli interface
    # Usage examples:
    # python main.py query "Your preferences here"           -> recommendations as text
    # python main.py query --json "Your preferences here"    -> full final state as JSON
    # python main.py query --thread-id abc "..."              -> tag the run with a conversation id
    # python main.py serve [port]                             -> start the HTTP API
    # python main.py                                          -> run with default preferences

    if len(sys.argv) > 1 and sys.argv[1] == "query":
        as_json = False
        thread_id = None
        words = []

        args = sys.argv[2:]
        i = 0
        while i < len(args):
            arg = args[i]
            if arg == "--json":
                as_json = True
            elif arg == "--thread-id" and i + 1 < len(args):
                thread_id = args[i + 1]
                i += 1
            else:
                words.append(arg)
            i += 1

        preferences = " ".join(words) or DEFAULT_PREFERENCES
        sys.exit(run_agent(preferences, as_json=as_json, thread_id=thread_id))
    elif len(sys.argv) > 1 and sys.argv[1] == "serve":
        port = int(sys.argv[2]) if len(sys.argv) > 2 and sys.argv[2].isdigit() else 8000
        serve(port)
    else:
        # default mode: run the agent with default preferences
        sys.exit(run_agent(DEFAULT_PREFERENCES))
