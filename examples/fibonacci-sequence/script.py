def fibonacci(n):
    a, b = 0, 1
    for _ in range(n):
        yield a
        a, b = b, a + b


sequence = list(fibonacci(15))
print("First 15 Fibonacci numbers:")
print(", ".join(str(n) for n in sequence))
print(f"Even terms: {[n for n in sequence if n % 2 == 0]}")
print(f"Ratio of the last two terms: {sequence[-1] / sequence[-2]:.6f}")

sequence[-1]
