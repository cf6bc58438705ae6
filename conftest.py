"""
Shared pytest setup: robots from spherical_wrist_robots.csv.

Any test taking a ``robot`` argument runs once per CSV row; ``robot`` is a
dict with ``classname``, ``case`` (PieperCase name) and ``DHM`` (6x4 array).
"""

import csv
import os

import numpy as np

ROBOT_CSV = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'spherical_wrist_robots.csv')


def read_robot_csv(csv_path: str = ROBOT_CSV):
    robots = []
    with open(csv_path, 'r') as f:
        reader = csv.DictReader(f)
        for row in reader:
            DHM = np.array([
                [float(row[f'alpha{i}']), float(row[f'a{i}']), float(row[f'd{i+1}']), float(row[f'th{i+1}'])]
                for i in range(6)
            ])
            robots.append({'classname': row['classname'], 'case': row['case'], 'DHM': DHM})
    return robots


def pytest_generate_tests(metafunc):
    if 'robot' in metafunc.fixturenames:
        robots = read_robot_csv()
        metafunc.parametrize('robot', robots, ids=[r['classname'] for r in robots])
