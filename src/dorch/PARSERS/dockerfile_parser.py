"""
Parsers for Dockerfiles, extracting instructions and arguments.
"""
import json
import re
from typing import List, Union
from pathlib import Path

from ..MODELS.dockerfile_ast import Instruction

_COMMENT = re.compile(r'^[ \t]*#.*$', re.MULTILINE)
_CONTINUATION = re.compile(r'\\[ \t]*\n')
_INSTRUCTION = re.compile(r'^\s*([A-Za-z]+)(?:\s+(.*))?$')


class DockerfileParser:
    """
    Parser for Dockerfile instructions.
    """
    def parse(self, dockerfile_path: Union[str, Path]) -> List[Instruction]:
        """
        Parses a Dockerfile from a file path.

        :param dockerfile_path: Path to the Dockerfile.
        :return: List of parsed instructions.
        """
        with open(dockerfile_path, 'r', encoding='utf-8') as f:
            content = f.read()
        return self.parse_from_string(content)

    def parse_from_string(self, content: str) -> List[Instruction]:
        """
        Parses a Dockerfile from a string content.

        Instruction names are upper-cased; leading --flag=value options
        (e.g. COPY --from=builder) are split off into Instruction.flags.
        """
        instructions = []

        content = _COMMENT.sub('', content)

        # Join continuations but keep track of the line each instruction starts on
        line_no = 0
        logical = []
        pending = ""
        start = 0
        for raw_line in content.split('\n'):
            line_no += 1
            if not pending:
                start = line_no
            if _CONTINUATION.search(raw_line + '\n'):
                pending += raw_line.rstrip()[:-1] + ' '
                continue
            logical.append((start, pending + raw_line))
            pending = ""
        if pending:
            logical.append((start, pending))

        for start, text in logical:
            match = _INSTRUCTION.match(text)
            if not match:
                continue
            inst = match.group(1).upper()
            args_str = (match.group(2) or "").strip()

            flags = []
            while args_str.startswith('--'):
                flag, _, rest = args_str.partition(' ')
                flags.append(flag)
                args_str = rest.strip()

            if args_str.startswith('[') and args_str.endswith(']'):
                try:
                    args = [str(a) for a in json.loads(args_str)]
                except json.JSONDecodeError:
                    args = [args_str]
            elif inst == "ENV" and '=' in args_str:
                args = re.findall(r'(\S+=\S+)', args_str)
            elif inst in ("ENV", "LABEL"):
                args = args_str.split(None, 1)
            elif inst in ("ADD", "COPY"):
                args = args_str.split()
            else:
                args = [args_str] if args_str else []

            instructions.append(Instruction(
                instruction=inst,
                arguments=args,
                flags=flags,
                raw=text.strip(),
                line=start,
            ))

        return instructions
