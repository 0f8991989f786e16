import copy
from typing import Optional

from sdclient.logs import get_logger; log = get_logger(__name__)  # noqa: E702


def fix_dict(set, req, src: str | None = None, warned: bool = False, path=""):
    was_warned = warned
    for k, req_v in req.items():
        current_path = f"{path}/{k}" if path else k  # Update the current path
        if k not in set:
            if not warned and src:  # Only log if warned is initially False
                log.warning(f'key "{current_path}" missing from "{src}".')
                log.info(f'Applying default value for "{current_path}": {repr(req_v)}.')
                was_warned = True
            set[k] = copy.deepcopy(req_v)
        elif isinstance(req_v, dict) and isinstance(set[k], dict):
            set[k], child_warned = fix_dict(set[k], req_v, src, warned, current_path)
            was_warned = was_warned or child_warned  # Update was_warned if any child call was warned
    return set, was_warned

def split_at_first_comma(data: str, return_before: bool = False) -> str:
    if "," in data:
        before, after = data.split(",", 1)
        return before if return_before else after
    return data

def parse_infotext(info: Optional[str]) -> dict[str, str]:
    '''
    Parses the generation info returned by png-info.
    Line 0 is the prompt, line 1 holds "key: value" pairs separated by ", ".
    Any further lines are ignored.
    '''
    parsed = {}
    if not info:
        return parsed
    lines = info.split('\n')
    if len(lines) < 2:
        return parsed
    parsed['Prompt'] = lines[0]
    for item in lines[1].split(', '):
        split = item.split(': ')
        if len(split) >= 2:
            # only the segment after the first ": " and before any further one
            parsed[split[0]] = split[1]
    return parsed
