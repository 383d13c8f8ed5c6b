"""Sieve of Eratosthenes at growing sizes."""


def make_sieve(limit):
    flags = [0] * (limit + 1)

    def sieve(b):
        for _ in range(b.N):
            count = 0
            for j in range(limit + 1):
                flags[j] = 1
            for j in range(2, limit + 1):
                if flags[j]:
                    for k in range(j + j, limit + 1, j):
                        flags[k] = 0
                    count += 1

    return sieve


def bench_sieve(b):
    b.run("sieve-100", make_sieve(100))
    b.run("sieve-1000", make_sieve(1000))
    b.run("sieve-10000", make_sieve(10000))
    b.run("sieve-100000", make_sieve(100000))
