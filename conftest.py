
import glob
import os


def pytest_generate_tests(metafunc):
    if "contest_path" in metafunc.fixturenames:

        test_contest_set = glob.glob(f'{metafunc.config.rootpath}/tests/contest_sets/tabulation_test/**/input', recursive=True)
        test_contest_set_dirs = sorted(os.path.dirname(test_path) for test_path in test_contest_set)

        metafunc.parametrize("contest_path", test_contest_set_dirs, ids=[os.path.basename(d) for d in test_contest_set_dirs])
