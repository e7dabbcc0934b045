# Configuration file for the Sphinx documentation builder.

import os
import sys

# Make the package importable for autodoc
sys.path.insert(0, os.path.abspath("../src"))

from license_auditor import __version__  # noqa: E402

# -- Project information -----------------------------------------------------
project = "License Auditor"
copyright = "2026, License Auditor Contributors"
author = "License Auditor Contributors"
release = __version__

# -- General configuration ---------------------------------------------------
extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.intersphinx",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
    "myst_parser",
    "sphinxcontrib.mermaid",
]

source_suffix = {
    ".rst": "restructuredtext",
    ".md": "markdown",
}
root_doc = "index"

# Google-style docstrings only
napoleon_google_docstring = True
napoleon_numpy_docstring = False
napoleon_include_init_with_doc = True
napoleon_attr_annotations = True

myst_enable_extensions = [
    "colon_fence",
    "deflist",
]
myst_fence_as_directive = ["mermaid"]

intersphinx_mapping = {
    "python": ("https://docs.python.org/3", None),
}

templates_path = ["_templates"]
exclude_patterns = ["_build", "Thumbs.db", ".DS_Store"]

# -- Options for HTML output -------------------------------------------------
html_theme = "sphinx_rtd_theme"
html_title = f"License Auditor {release}"
html_static_path = []

# -- Autodoc settings --------------------------------------------------------
autodoc_default_options = {
    "members": True,
    "member-order": "groupwise",
    "show-inheritance": True,
    "exclude-members": "__weakref__, to_dict, from_dict",
}
autodoc_typehints = "description"
autodoc_class_signature = "separated"

# Frozen dataclasses document their fields twice
suppress_warnings = ["ref.python"]
