"""
The `decode` subcommand translates a file of tokenized sentences, one per line, with the
system described by a configuration file.

    $ smtdecoder decode config.json input.txt --output-file output.txt
"""
import argparse
import json
import logging
import os
import sys
from typing import IO, Optional

from overrides import overrides

from smtdecoder.commands.subcommand import Subcommand
from smtdecoder.common import Params
from smtdecoder.common import logging as common_logging
from smtdecoder.common.logging import prepare_global_logging
from smtdecoder.system import System
from smtdecoder.translator import FAILURE_POLICIES, Translator

logger = logging.getLogger(__name__)


@Subcommand.register("decode")
class Decode(Subcommand):
    @overrides
    def add_subparser(self, parser: argparse._SubParsersAction) -> argparse.ArgumentParser:
        description = """Translate a file of tokenized sentences, one per line."""
        subparser = parser.add_parser(
            self.name, description=description, help="Translate sentences with a configured system."
        )

        subparser.add_argument("config_file", type=str, help="the JSON configuration of the system")
        subparser.add_argument(
            "input_file", type=str, help="the sentences to translate, or - for stdin"
        )
        subparser.add_argument("--output-file", type=str, help="path to output file")
        subparser.add_argument(
            "--nbest-file", type=str, help="also write n-best lists to this file"
        )
        subparser.add_argument(
            "--json", action="store_true", help="write one JSON object per sentence"
        )
        subparser.add_argument(
            "--threads", type=int, default=1, help="how many sentences to decode at once"
        )
        subparser.add_argument(
            "--failure-policy",
            type=str,
            choices=FAILURE_POLICIES,
            default="fail",
            help="what to do with sentences that cannot be translated",
        )
        subparser.add_argument(
            "-o",
            "--overrides",
            type=str,
            default="",
            help=(
                "a json structure used to override the configuration, e.g., "
                "'{\"search.stack_size\": 10}'.  Nested parameters can be specified either"
                " with nested dictionaries or with dot syntax."
            ),
        )
        subparser.add_argument(
            "--log-dir", type=str, help="also write the log to out.log in this directory"
        )
        subparser.add_argument(
            "--silent", action="store_true", help="do not print output to stdout"
        )
        subparser.add_argument(
            "--file-friendly-logging",
            action="store_true",
            default=False,
            help="outputs tqdm status on separate lines and slows tqdm refresh rate",
        )

        subparser.set_defaults(func=decode_from_args)

        return subparser


def decode_from_args(args: argparse.Namespace) -> None:
    common_logging.FILE_FRIENDLY_LOGGING = args.file_friendly_logging
    if args.log_dir:
        os.makedirs(args.log_dir, exist_ok=True)
        prepare_global_logging(args.log_dir, log_stream=sys.stderr)

    params = Params.from_file(args.config_file, args.overrides)
    system = System.from_params(params)
    translator = Translator(system, num_threads=args.threads, failure_policy=args.failure_policy)

    output_file: Optional[IO] = open(args.output_file, "w") if args.output_file else None
    nbest_file: Optional[IO] = open(args.nbest_file, "w") if args.nbest_file else None
    input_file: IO = sys.stdin if args.input_file == "-" else open(args.input_file, "r")
    try:
        lines = [line.rstrip("\n") for line in input_file]
        num_failed = 0
        for result in translator.translate_lines(lines):
            if result.failed:
                num_failed += 1
            if args.json:
                output = json.dumps(result.to_json(system))
            else:
                output = result.text
            if not args.silent:
                print(output)
            if output_file is not None:
                output_file.write(output + "\n")
            if nbest_file is not None:
                for nbest_line in result.nbest_lines(system):
                    nbest_file.write(nbest_line + "\n")
        logger.info("translated %d sentences, %d failed", len(lines), num_failed)
    finally:
        if input_file is not sys.stdin:
            input_file.close()
        if output_file is not None:
            output_file.close()
        if nbest_file is not None:
            nbest_file.close()
