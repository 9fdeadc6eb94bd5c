# Sphinx configuration for the mira-16s documentation.
#
# Build with:  pip install -e .[docs] && sphinx-build -b html docs docs/_build

import os
import sys

# autodoc imports asv_calling and asv_summary from the source tree
sys.path.insert(0, os.path.abspath("../src"))

from asv_calling import __version__  # noqa: E402

project = "mira-16s"
copyright = "2025, MIRA study group"
author = "MIRA study group"
release = __version__
version = ".".join(__version__.split(".")[:2])

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.autosummary",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "sphinx.ext.intersphinx",
]

exclude_patterns = ["_build", "Thumbs.db", ".DS_Store"]

# -- autodoc / autosummary ---------------------------------------------------

autosummary_generate = True
autodoc_default_options = {
    "members": True,
    "show-inheritance": True,
    "member-order": "bysource",
}
autodoc_typehints = "description"

# -- napoleon ----------------------------------------------------------------

# Docstrings in both packages are numpydoc style
napoleon_google_docstring = False
napoleon_numpy_docstring = True
napoleon_use_rtype = True
napoleon_attr_annotations = True

# -- intersphinx -------------------------------------------------------------

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
    "numpy": ("https://numpy.org/doc/stable/", None),
    "pandas": ("https://pandas.pydata.org/docs/", None),
    "matplotlib": ("https://matplotlib.org/stable/", None),
    "biopython": ("https://biopython.org/docs/latest/", None),
}

# -- HTML --------------------------------------------------------------------

html_theme = "alabaster"
html_theme_options = {
    "description": "Amplicon sequence variants for 16S rRNA sequencing runs",
}
