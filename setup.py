#!/usr/bin/env python
from setuptools import find_packages, setup

version_namespace = {}
with open("folio_sync/version.py", "r") as f:
    exec(f.read(), version_namespace)  # nosec

VERSION = version_namespace["get_version"]()
INSTALL_REQUIREMENTS = [
    "Django>=4.2",
    "celery>=5.3",
    "django-redis>=5.4",
    "pymarc>=5.1",
    "psycopg2-binary>=2.9",
    "redis>=4.5",
    "requests>=2.31",
    "sentry-sdk>=1.40",
    "structlog>=23.1",
    "urllib3>=1.26",
]
TEST_REQUIREMENTS = ["pytest", "pytest-django"]
SCRIPTS = ["manage.py"]
DESCRIPTION = "Synchronizes ArchivesSpace resources with FOLIO instance records"
CLASSIFIERS = """\
Environment :: Console
Framework :: Django
Framework :: Celery
Programming Language :: Python
Programming Language :: Python :: 3
""".splitlines()

with open("README.md", "r") as f:
    LONG_DESCRIPTION = f.read()


setup(
    name="folio-sync",
    version=VERSION,
    description=DESCRIPTION,
    long_description=LONG_DESCRIPTION,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["*.tests", "*.tests.*"]),
    include_package_data=True,
    scripts=SCRIPTS,
    install_requires=INSTALL_REQUIREMENTS,
    extras_require={"test": TEST_REQUIREMENTS},
    python_requires=">=3.9",
    classifiers=CLASSIFIERS,
)
