#!/usr/bin/env python

import os
import subprocess
import sys

# Required third-party imports, must be specified in pyproject.toml.
import packaging.version
from setuptools import setup, find_packages

REQUIRES = ["numpy>=1.22", "scipy>=1.9", "qutip>=5.0"]
EXTRAS_REQUIRE = {
    "tests": ["pytest>=5.2"],
}


def process_options():
    """
    Determine all runtime options, returning a dictionary of the results.  The
    keys are:
        'rootdir': str
            The root directory of the setup.  Almost certainly the directory
            that this setup.py file is contained in.
        'release': bool
            Is this a release build (True) or a local development build (False)
        'short_version', 'version': str
            The public version and the full (local) version.
    """
    options = {}
    options['rootdir'] = os.path.dirname(os.path.abspath(__file__))
    options = _determine_version(options)
    return options


def _determine_version(options):
    """
    Adds the 'short_version', 'version' and 'release' options.

    Read from the VERSION file to discover the version.  This should be a
    single line file containing valid Python package public identifier (see PEP
    440), for example
      0.1.0
      0.2.0rc1
      0.2.0.dev0
    Development versions get the git hash as local version label.
    """
    version_filename = os.path.join(options['rootdir'], 'VERSION')
    with open(version_filename, "r") as version_file:
        version_string = version_file.read().strip()
    version = packaging.version.Version(version_string)
    options['short_version'] = str(version.public)
    options['release'] = not version.is_devrelease
    if not options['release']:
        # Put the version string into canonical form, if it wasn't already.
        version_string = str(version)
        version_string += "+"
        try:
            git_out = subprocess.run(
                ('git', 'rev-parse', '--verify', '--short=7', 'HEAD'),
                check=True,
                stdout=subprocess.PIPE, stderr=subprocess.PIPE,
            )
            git_hash = git_out.stdout.decode(sys.stdout.encoding).strip()
            version_string += git_hash or "nogit"
        # CalledProcessError is for if the git command fails for internal
        # reasons (e.g. we're not in a git repository), OSError is for if
        # something goes wrong when trying to run git (e.g. it's not installed,
        # or a permission error).
        except (subprocess.CalledProcessError, OSError):
            version_string += "nogit"
    options['version'] = version_string
    return options


def create_version_py_file(options):
    """
    Generate and write out the file heomgen/version.py, which is used to
    produce the '__version__' information for the module.  This function will
    overwrite an existing file at that location.
    """
    filename = os.path.join(options['rootdir'], 'heomgen', 'version.py')
    content = "\n".join([
        "# This file is automatically generated by heomgen's setup.py.",
        f"short_version = '{options['short_version']}'",
        f"version = '{options['version']}'",
        f"release = {options['release']}",
    ])
    with open(filename, 'w') as file:
        print(content, file=file)


if __name__ == "__main__":
    options = process_options()
    create_version_py_file(options)
    setup(
        name="heomgen",
        version=options['version'],
        description=(
            "Construction of hierarchical equations of motion (HEOM)"
            " generator matrices for bosonic and fermionic baths"
        ),
        long_description=open("README.md").read(),
        long_description_content_type="text/markdown",
        license="BSD-3-Clause",
        python_requires=">=3.9",
        packages=find_packages(include=["heomgen", "heomgen.*"]),
        install_requires=REQUIRES,
        extras_require=EXTRAS_REQUIRE,
    )
