#r "pypi: six, 1.16.0"
import six

print(f"six {six.__version__}")
print(six.ensure_str(b"bytes become text"))

six.PY3
