"""
Pipeline
---------
Settings-driven entry points for every analysis in avmspatial.

Rules:
- Each function takes the records and a settings dictionary (see ``utilities.settings.load_settings``)
  and reads its parameters from the matching section of the settings.
- This module imports from other modules, but no other modules import from it.
"""

import avmspatial.clustering
import avmspatial.ratio_study
import avmspatial.regression
import avmspatial.spatial_stats
from avmspatial.clustering import DEFAULT_ATTRIBUTES
from avmspatial.utilities.settings import get_clustering_settings, get_spatial_settings, get_regression_settings, \
   get_gwr_settings


def run_clustering(properties, settings: dict, verbose: bool = False):
   """
   Run k-means clustering with the parameters in ``settings.analysis.clustering``.

   :param properties: Properties, dicts, or a DataFrame.
   :param settings: Settings dictionary.
   :type settings: dict
   :param verbose: Print progress.
   :type verbose: bool
   :returns: The clustering result.
   :rtype: avmspatial.clustering.ClusteringResult
   """
   s = get_clustering_settings(settings)
   attributes = s.get("attributes", [])
   if len(attributes) == 0:
      attributes = list(DEFAULT_ATTRIBUTES)
   return avmspatial.clustering.cluster_properties(
      properties,
      k=s.get("k", 5),
      attributes=attributes,
      max_iterations=s.get("max_iterations", 100),
      value_field=s.get("value_field", "value"),
      seed=s.get("seed", None),
      n_init=s.get("n_init", 10),
      verbose=verbose
   )


def run_hotspot_analysis(properties, settings: dict, verbose: bool = False):
   s = get_spatial_settings(settings)
   return avmspatial.spatial_stats.hotspot_analysis(
      properties,
      field=s.get("field", "value"),
      max_distance_km=s.get("max_distance_km", 2.0),
      significance=s.get("significance", 0.05),
      verbose=verbose
   )


def run_morans_i(properties, settings: dict, verbose: bool = False):
   s = get_spatial_settings(settings)
   return avmspatial.spatial_stats.morans_i(
      properties,
      field=s.get("field", "value"),
      max_distance_km=s.get("max_distance_km", 2.0),
      weight_type=s.get("weight_type", "inverse_distance"),
      significance=s.get("significance", 0.05),
      verbose=verbose
   )


def run_proximity_clusters(properties, settings: dict):
   s = get_spatial_settings(settings)
   return avmspatial.clustering.identify_property_clusters(
      properties,
      field=s.get("field", "value"),
      distance_threshold_km=s.get("cluster_distance_km", 0.1)
   )


def run_regression(properties, settings: dict, verbose: bool = False):
   """
   Fit the regression model named in ``settings.analysis.regression.model`` ("ols" or "gwr").

   :param properties: Properties, dicts, or a DataFrame.
   :param settings: Settings dictionary.
   :type settings: dict
   :param verbose: Print progress.
   :type verbose: bool
   :returns: The fitted model.
   :rtype: avmspatial.regression.RegressionModel
   :raises ValueError: If no predictors are configured or the model name is unknown.
   """
   s = get_regression_settings(settings)
   model = s.get("model", "ols")
   target = s.get("target", "value")
   predictors = s.get("predictors", [])
   spatial_check = s.get("spatial_check", True)
   if len(predictors) == 0:
      raise ValueError("No predictors configured in settings.analysis.regression.predictors")

   if model == "ols":
      return avmspatial.regression.ols(properties, target, predictors, spatial_check=spatial_check, verbose=verbose)
   elif model == "gwr":
      g = get_gwr_settings(settings)
      return avmspatial.regression.gwr(
         properties,
         target,
         predictors,
         bandwidth=g.get("bandwidth", None),
         kernel=g.get("kernel", "gaussian"),
         adaptive=g.get("adaptive", False),
         spatial_check=spatial_check,
         verbose=verbose
      )
   raise ValueError(f"Unknown regression model '{model}', expected 'ols' or 'gwr'")


def run_model_quality(properties, settings: dict, verbose: bool = False):
   model = run_regression(properties, settings, verbose=verbose)
   quality = avmspatial.ratio_study.calculate_model_quality(model)
   if verbose:
      print(f"--> model quality: {quality.to_dict()}")
   return model, quality


def run_spatial_regression(properties, amenities, settings: dict, verbose: bool = False):
   """
   Fit the spatial hedonic model on ``settings.analysis.regression.target``.

   :param properties: Properties, dicts, or a DataFrame.
   :param amenities: Amenities or dicts.
   :param settings: Settings dictionary.
   :type settings: dict
   :param verbose: Print progress.
   :type verbose: bool
   :returns: The fitted model.
   :rtype: avmspatial.regression.SpatialRegressionModel
   """
   s = get_regression_settings(settings)
   return avmspatial.regression.spatial_regression(
      properties,
      amenities,
      target=s.get("target", "value"),
      spatial_check=s.get("spatial_check", True),
      verbose=verbose
   )
