"""
Flowbot command line

Chat with the workflow command engine from a terminal:
- Interactive prompt (default)
- One-shot commands with --command
- Optional seed board from a YAML file
- Dump the final board as JSON
"""

import sys
import json
import logging
import argparse

import yaml

import flowbot_config
from board_loader import dump_board, load_board
from chat_session import ChatSession
from workflow_models import WorkflowState

logger = logging.getLogger(__name__)

QUIT_WORDS = {"quit", "exit", "bye"}


def _print_turn(result):
    print(f"flowbot> {result.reply}")
    highlighted = result.state.get(result.highlighted_id)
    if highlighted is not None:
        print(f"         [{highlighted.name}: {highlighted.status}, {highlighted.progress}% done]")


def run_commands(session, commands):
    """Send each command in order; returns the last result."""
    result = None
    for text in commands:
        print(f"you> {text}")
        result = session.send(text)
        if result is not None:
            _print_turn(result)
    return result


def run_repl(session):
    """Read commands from stdin until EOF or a quit word."""
    print(f"flowbot> {session.messages[0].content}")
    print(f"         Try: {' | '.join(session.suggestions)}")
    while True:
        try:
            text = input("you> ")
        except (EOFError, KeyboardInterrupt):
            print()
            break
        if text.strip().lower() in QUIT_WORDS:
            break
        result = session.send(text)
        if result is not None:
            _print_turn(result)


def main(argv=None):
    """Main entry point with argument parsing."""
    parser = argparse.ArgumentParser(
        description='Chat with Flowbot, the workflow copilot',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Interactive session on an empty board
  python flowbot.py

  # Start from the demo board
  python flowbot.py --board boards/demo.yaml

  # Scripted session, print the resulting board as JSON
  python flowbot.py --command "create workflow Launch Campaign" \\
                    --command "add step to Launch Campaign: Prepare email sequence" \\
                    --command "run workflow Launch Campaign" --json
        """
    )

    parser.add_argument('--board', default=flowbot_config.SEED_BOARD or None,
                        help='Board YAML file to start from')
    parser.add_argument('--command', '-c', action='append', dest='commands',
                        help='Command to send (repeatable); skips the interactive prompt')
    parser.add_argument('--json', action='store_true',
                        help='Print the final board as JSON on exit')
    parser.add_argument('--think-delay', type=float, default=0.0,
                        help='Seconds to pause before each reply (default: 0)')
    parser.add_argument('--verbose', '-v', action='store_true',
                        help='Log every classified command')

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else flowbot_config.LOG_LEVEL,
        format='%(asctime)s - %(levelname)s - %(message)s'
    )

    state = WorkflowState()
    if args.board:
        try:
            state = load_board(args.board)
            logger.info(f"Loaded {len(state.workflows)} workflow(s) from {args.board}")
        except (FileNotFoundError, ValueError, yaml.YAMLError) as e:
            logger.error(f"Could not load board: {e}")
            sys.exit(1)

    session = ChatSession(state=state, think_delay=args.think_delay)

    if args.commands:
        run_commands(session, args.commands)
    else:
        run_repl(session)

    if args.json:
        print(json.dumps(dump_board(session.state), indent=2))


if __name__ == "__main__":
    main()
