import numpy as np


def objects_are_equal(a, b, epsilon: float = 1e-6):
	a_str = isinstance(a, str)
	b_str = isinstance(b, str)

	if a_str and b_str:
		return a == b

	a_dict = isinstance(a, dict)
	b_dict = isinstance(b, dict)

	if a_dict and b_dict:
		return dicts_are_equal(a, b, epsilon)

	a_list = isinstance(a, (list, tuple))
	b_list = isinstance(b, (list, tuple))

	if a_list and b_list:
		return lists_are_equal(list(a), list(b), epsilon)
	else:
		a_other = a_str or a_dict or a_list
		b_other = b_str or b_dict or b_list

		a_is_num = (not a_other) and isinstance(a, (int, float, np.number))
		b_is_num = (not b_other) and isinstance(b, (int, float, np.number))

		if a_is_num and b_is_num:
			if a == b:
				# covers matching infinities
				return True
			if np.isnan(a) and np.isnan(b):
				return True
			# compare floats with epsilon:
			return abs(a - b) < epsilon

		# ensure types are the same:
		if type(a) != type(b):
			return False
		return a == b


def lists_are_equal(a: list, b: list, epsilon: float = 1e-6):
	# ensure that the two lists contain the same information:
	result = True
	if len(a) != len(b):
		result = False
	else:
		for i in range(len(a)):
			if not objects_are_equal(a[i], b[i], epsilon):
				result = False
				break
	if not result:
		# print both lists for debugging:
		print(a)
		print(b)
		return False
	return True


def dicts_are_equal(a: dict, b: dict, epsilon: float = 1e-6):
	# ensure that the two dictionaries contain the same information:
	if len(a) != len(b):
		return False
	for key in a:
		if key not in b:
			return False
		if not objects_are_equal(a[key], b[key], epsilon):
			return False
	return True


def matrices_are_equal(a, b, epsilon: float = 1e-6):
	a = np.asarray(a, dtype=np.float64)
	b = np.asarray(b, dtype=np.float64)
	if a.shape != b.shape:
		print(f"Shapes do not match: A={a.shape}, B={b.shape}")
		return False
	delta = np.abs(a - b)
	if np.any(delta >= epsilon):
		print(f"Largest difference: {float(np.max(delta))}")
		return False
	return True
