import colorama
from colorama import Fore, Back, Style
import sys
import logging
log = logging.getLogger('sdclient')
colorama.init()

COLORS = {
    'WARNING': f'{Fore.LIGHTRED_EX} WARN [{{name}}]: ',
    'INFO': f'{Fore.GREEN} INFO [{{name}}]: {Fore.LIGHTGREEN_EX}',
    'DEBUG': f'{Fore.LIGHTCYAN_EX}DEBUG [{{name}}]: ',
    'CRITICAL': f'{Back.RED}{Fore.WHITE} CRIT [{{name}}]: ',
    'ERROR': f'{Fore.RED}ERROR [{{name}}]: ',
}

class ColoredFormatter(logging.Formatter):
    def __init__(self, msg, use_color = True, **kw):
        logging.Formatter.__init__(self, msg, **kw)
        self.use_color = use_color

    def format(self, record):
        levelname = record.levelname
        name = record.name
        if self.use_color and levelname in COLORS:
            record.levelname = COLORS[levelname].format(levelname=levelname, name=name)

        f = logging.Formatter.format(self, record)
        record.levelname = levelname
        return f

def get_logger(name):
    # 'sdclient.apis' -> child 'apis' of the package logger
    if name.startswith(f'{log.name}.'):
        name = name.split('.', 1)[1]
    return log.getChild(name)

log_level = logging.INFO

log_formatter = ColoredFormatter(f'{Fore.BLACK}{Back.WHITE}%(asctime)s.%(msecs)03d{Back.BLACK} {Back.LIGHTBLACK_EX}#%(lineno)-5d{Style.RESET_ALL} {Fore.LIGHTWHITE_EX}%(levelname)s%(message)s{Style.RESET_ALL}', datefmt='%H:%M:%S')
log.setLevel(log_level)


def add_file_handler(level=logging.DEBUG, fp="sdclient.log", **kw):
    log_formatter_file = ColoredFormatter('[%(asctime)-15s] %(levelname)-8s #%(lineno)-5d (%(name)s) %(module)s.%(funcName)s -> %(message)s', use_color=False)
    file_handler = logging.FileHandler(fp, encoding='utf-8', **kw)
    file_handler.setFormatter(log_formatter_file)
    file_handler.setLevel(level)
    log.addHandler(file_handler)
    return file_handler, log_formatter_file

def set_level(level):
    log.setLevel(level)
    console_handler.setLevel(level)

console_handler = logging.StreamHandler(sys.stdout)
console_handler.setLevel(log_level)
console_handler.setFormatter(log_formatter)
log.addHandler(console_handler)


logging.getLogger('asyncio').setLevel(logging.WARNING)
