from setuptools import setup, find_packages

with open("shellyrpc/version.txt", "r", encoding="utf-8") as f:
  __version__ = f.read().strip()

with open("README.md", "r", encoding="utf-8") as f:
  long_description = f.read()


extras_dev = [
  "pytest",
  "pytest-timeout",
  "pylint",
  "mypy",
]

extras_all = extras_dev

setup(
  name="shellyrpc",
  version=__version__,
  packages=find_packages(exclude=["tools"]),
  description="Outbound WebSocket JSON-RPC transport for Shelly devices",
  long_description=long_description,
  long_description_content_type="text/markdown",
  install_requires=["websockets>=14.0", "typing_extensions"],
  package_data={"shellyrpc": ["version.txt"]},
  extras_require={
    "dev": extras_dev,
    "all": extras_all,
  },
  entry_points={
    "console_scripts": [
      "shellyrpc-monitor=shellyrpc.monitor:main",
    ],
  }
)
