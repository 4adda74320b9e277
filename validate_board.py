"""
Simple script to validate a board file.

Usage:
    python validate_board.py boards/demo.yaml
"""

import sys
import logging

import yaml

from board_loader import load_board, validate_board

logging.basicConfig(level=logging.INFO, format='%(levelname)s: %(message)s')
logger = logging.getLogger(__name__)


def main():
    if len(sys.argv) < 2:
        print("Usage: python validate_board.py <board_file>")
        sys.exit(1)

    board_file = sys.argv[1]

    try:
        logger.info(f"Loading board: {board_file}")
        state = load_board(board_file)

        logger.info("✓ Board loaded successfully")
        logger.info(f"  Workflows: {len(state.workflows)}")
        for wf in state.workflows:
            logger.info(f"    - {wf.name} ({wf.status}, {wf.done_count}/{len(wf.steps)} steps done)")
            if wf.tags:
                logger.info(f"      Tags: {', '.join(sorted(wf.tags))}")

        if state.selected is not None:
            logger.info(f"  Selected: {state.selected.name}")
        else:
            logger.info("  Selected: None")

        warnings = validate_board(state)
        if warnings:
            logger.warning("Validation warnings:")
            for warning in warnings:
                logger.warning(f"  - {warning}")
        else:
            logger.info("✓ No validation warnings")

        logger.info("")
        logger.info("Board is valid and ready to use!")
        logger.info(f"Run with: python flowbot.py --board {board_file}")

    except FileNotFoundError as e:
        logger.error(f"File not found: {e}")
        sys.exit(1)
    except ValueError as e:
        logger.error(f"Invalid board: {e}")
        sys.exit(1)
    except yaml.YAMLError as e:
        logger.error(f"Could not parse YAML: {e}")
        sys.exit(1)


if __name__ == '__main__':
    main()
