from setuptools import setup, find_packages
import sys

if sys.version_info < (3, 9):
    print("Please use python 3.9 or newer.")
    sys.exit(1)


requires = [
    "pyjwt",
    "requests",
    "zope.interface",
    "sqlalchemy>=1.4",
    "pyramid",
]

testing_deps = ["pytest", "webob"]


setup(
    name="popclips",
    version="0.1a",
    description="Shop auth, webhooks and billing for the Popclips shopify app.",
    install_requires=requires,
    packages=find_packages(exclude=["tests", "tests.*"]),
    include_package_data=True,
    zip_safe=False,
    extras_require={
        "testing": testing_deps,
        "dev": ["flake8", "black"],
    },
    entry_points={
        "paste.app_factory": ["main = popclips.web:main"],
    },
)
