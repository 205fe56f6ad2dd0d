"""
Run Nx Docs Assistant - interactive terminal session
"""
import asyncio
import logging
import sys

from dotenv import load_dotenv
load_dotenv()

from config.settings import get_settings
from nx_docs_ai.errors import ErrorKind
from nx_docs_ai.rag_agent import DocsAssistant

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[
        logging.StreamHandler(sys.stderr),
    ]
)

HELP = """
Commands:
  /reset   - Clear conversation history
  /history - Show conversation history
  /stats   - Show assistant settings
  /quit    - Exit

Anything else is sent as a question about the Nx documentation.
"""


async def main() -> int:
    assistant = DocsAssistant()
    prior_answer = None

    print("=" * 60)
    print("  Nx Docs Assistant")
    print("=" * 60)
    print(HELP)

    while True:
        try:
            line = await asyncio.to_thread(input, "> ")
        except (EOFError, KeyboardInterrupt):
            print()
            return 0

        line = line.strip()
        if not line:
            continue
        if line == "/quit":
            return 0
        if line == "/reset":
            await assistant.reset_history()
            prior_answer = None
            print("History cleared.")
            continue
        if line == "/history":
            for item in assistant.get_history():
                print(f"[{item.role}] {item.content[:200]}")
            print(f"({assistant.get_total_tokens()} tokens used so far)")
            continue
        if line == "/stats":
            print(assistant.get_stats())
            continue

        outcome = await assistant.query(line, prior_answer=prior_answer)
        if outcome.ok:
            prior_answer = outcome.response.text_response
            print(outcome.response.text_response)
            if outcome.response.sources:
                print("\nSources:")
                print(outcome.response.sources_markdown)
        elif outcome.error.kind == ErrorKind.USER:
            print(outcome.error.message)
        else:
            print(f"Something went wrong ({outcome.error.kind.value}): {outcome.error.message}")
            if outcome.error.kind == ErrorKind.CONFIGURATION:
                return 1


def run() -> None:
    sys.exit(asyncio.run(main()))


if __name__ == "__main__":
    run()
