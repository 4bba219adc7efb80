import copy
import json
import os


def _template_path() -> str:
	return os.path.join(os.path.dirname(os.path.dirname(__file__)), "resources", "settings.template.json")


def load_settings_template():
	with open(_template_path(), "r") as f:
		settings = json.load(f)
	return settings


def load_settings(settings_file: str = None, settings_object: dict = None):
	"""
  Load analysis settings, layering a local settings file (or dictionary) over the packaged template.

  :param settings_file: Path to a JSON settings file. Ignored if ``settings_object`` is given.
  :type settings_file: str, optional
  :param settings_object: Settings dictionary to use instead of a file.
  :type settings_object: dict, optional
  :returns: The merged settings with comment keys removed.
  :rtype: dict
  """
	if settings_object is not None:
		settings = copy.deepcopy(settings_object)
	elif settings_file is not None:
		with open(settings_file, "r") as f:
			settings = json.load(f)
	else:
		settings = {}
	template = load_settings_template()
	# merge settings with template; settings will overwrite template values
	settings = merge_settings(template, settings)
	settings = remove_comments_from_settings(settings)
	return settings


def remove_comments_from_settings(s: dict):
	comment_token = "__"
	keys_to_remove = []
	for key in s:
		entry = s[key]
		if key.startswith(comment_token):
			keys_to_remove.append(key)
		elif isinstance(entry, dict):
			s[key] = remove_comments_from_settings(entry)
	for k in keys_to_remove:
		del s[k]
	return s


def merge_settings(template: dict, local: dict):
	# Start by copying the template
	merged = copy.deepcopy(template)

	# Iterate over keys of local:
	for key in local:
		entry_l = local[key]
		# If the key is in both template and local, reconcile them:
		if key in template:
			entry_t = merged[key]
			if isinstance(entry_t, dict) and isinstance(entry_l, dict):
				# If both are dictionaries, merge them recursively:
				merged[key] = merge_settings(entry_t, entry_l)
			elif isinstance(entry_t, list) and isinstance(entry_l, list):
				# If both are lists, add any new local items that aren't already in template:
				for item in entry_l:
					if item not in entry_t:
						entry_t.append(item)
				merged[key] = entry_t
			else:
				merged[key] = entry_l
		else:
			merged[key] = entry_l

	return merged


def get_analysis_settings(s: dict, key: str) -> dict:
	return s.get("analysis", {}).get(key, {})


def get_clustering_settings(s: dict) -> dict:
	return get_analysis_settings(s, "clustering")


def get_spatial_settings(s: dict) -> dict:
	return get_analysis_settings(s, "spatial")


def get_regression_settings(s: dict) -> dict:
	return get_analysis_settings(s, "regression")


def get_gwr_settings(s: dict) -> dict:
	return get_analysis_settings(s, "gwr")
