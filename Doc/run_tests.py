#!/usr/bin/env python
"""
Test runner script for the binventory apps
Usage: python Doc/run_tests.py [app ...]
"""
import os
import sys

import django
from django.conf import settings
from django.test.utils import get_runner

APPS = [
    'binventory.core',
    'binventory.organizations',
    'binventory.permissions',
    'binventory.catalog',
    'binventory.bins',
    'binventory.qr',
    'binventory.search',
    'binventory.scanner',
]

if __name__ == "__main__":
    sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
    os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'binventory.config.settings')
    django.setup()
    TestRunner = get_runner(settings)
    test_runner = TestRunner()
    labels = [f'binventory.{name}' for name in sys.argv[1:]] or APPS
    failures = test_runner.run_tests(labels)
    sys.exit(bool(failures))
