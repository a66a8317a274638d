# Keep this TINY so importing the package never drags in heavy deps.
from . import lib  # so: from modules.candidate_tweets import lib
from .main import run  # so: from modules.candidate_tweets import run

__all__ = ["lib", "run"]
