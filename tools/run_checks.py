import os
import sys
import subprocess

def run(cmd, env=None):
    print(">>", " ".join(cmd))
    r = subprocess.run(cmd, env=env)
    if r.returncode != 0:
        raise SystemExit(r.returncode)

def main():
    mode = sys.argv[1] if len(sys.argv) > 1 else "all"  # unit|api|all

    env = os.environ.copy()

    markers = {"unit": ["unit"], "api": ["api"], "all": ["unit", "api"]}.get(mode)
    if markers is None:
        raise SystemExit(f"unknown mode: {mode} (expected unit, api or all)")

    for marker in markers:
        run([sys.executable, "-m", "pytest", "-m", marker, "-q"], env=env)

if __name__ == "__main__":
    main()
