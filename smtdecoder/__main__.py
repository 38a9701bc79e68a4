#!/usr/bin/env python
import logging
import os
import sys

if os.environ.get("SMTDECODER_DEBUG"):
    LEVEL = logging.DEBUG
else:
    level_name = os.environ.get("SMTDECODER_LOG_LEVEL", "INFO")
    LEVEL = logging._nameToLevel.get(level_name, logging.INFO)

sys.path.insert(0, os.path.dirname(os.path.abspath(os.path.join(__file__, os.pardir))))
logging.basicConfig(format="%(asctime)s - %(levelname)s - %(name)s - %(message)s", level=LEVEL)


def run():
    from smtdecoder.commands import main  # noqa

    main(prog="smtdecoder")


if __name__ == "__main__":
    run()
