# Printing, arithmetic and the value of the last expression.
name = "EvalGate"
print(f"Hello from {name}!")
print(f"Python {sys.version_info.major}.{sys.version_info.minor}")

numbers = [1, 2, 3, 4, 5]
print(f"Sum of {numbers}: {sum(numbers)}")
print(f"Started at: {datetime.datetime.now():%Y-%m-%d %H:%M:%S}")

sum(n * n for n in numbers)
