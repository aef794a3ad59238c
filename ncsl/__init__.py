"""
ncsl - NCSL front end for :mod:`nullcontracts`.

NCSL is an S-expression rendition of a C#-like language subset.  This
package reads it (:mod:`ncsl.reader`), builds syntax trees
(:mod:`ncsl.parser`), binds names and types (:mod:`ncsl.binder`) and
drives the checker (:mod:`ncsl.driver`, ``ncsl`` command).
"""

from ncsl.binder import Binder
from ncsl.driver import check_file, check_source
from ncsl.parser import NcslSyntaxError, parse_file, parse_source

__all__ = [
    "Binder",
    "NcslSyntaxError",
    "check_file",
    "check_source",
    "parse_file",
    "parse_source",
]
