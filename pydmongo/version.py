import pathlib

VERSION_FILE = pathlib.Path(__file__).with_name("VERSION")
__version__ = VERSION_FILE.read_text().strip() if VERSION_FILE.is_file() else "0.0.0"
