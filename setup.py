# This should be only one line. If it must be multi-line, indent the second
# line onwards to keep the PKG-INFO file format intact.
"""View, edit, import and export per-environment encrypted application \
secrets.
"""

from setuptools import find_packages, setup

version = open("src/credkeeper/version.txt").read().strip()

setup(
    name="credkeeper",
    version=version,
    install_requires=[
        "ConfigUpdater",
        "cryptography",
        "importlib_resources",
        "py",
        "pyyaml", ],
    extras_require={
        "test": [
            "mock",
            "pytest",
            "pytest-coverage",
            "pytest-instafail",
            "pytest-timeout", ]},
    entry_points="""
        [console_scripts]
            credkeeper = credkeeper.main:main
    """,
    license="BSD (2-clause)",
    keywords="secrets credentials encryption",
    classifiers="""\
License :: OSI Approved :: BSD License
Programming Language :: Python
Programming Language :: Python :: 3
Programming Language :: Python :: 3.8
Programming Language :: Python :: 3.9
Programming Language :: Python :: 3.10
Programming Language :: Python :: 3.11
Programming Language :: Python :: 3.12
Programming Language :: Python :: 3 :: Only
"""[:-1].split("\n"),
    description=__doc__.strip(),
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    packages=find_packages("src"),
    package_dir={"": "src"},
    package_data={"credkeeper": ["version.txt"]},
    include_package_data=True,
    zip_safe=False,
    python_requires=">=3.8")
