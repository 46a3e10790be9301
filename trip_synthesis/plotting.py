import cartopy.crs as ccrs
import cartopy.feature as cfeature
import matplotlib.pyplot as plt
import pandas as pd


def trips_to_points(trips):
    """
    Flatten geotagged trip images into a DataFrame (trip id, lat, lon, species).
    """
    rows = [
        {"trip_id": trip.id, "day_key": trip.day_key, "lat": image.latitude, "lon": image.longitude, "species": image.species}
        for trip in trips
        for image in trip.images
        if image.latitude is not None and image.longitude is not None
    ]
    return pd.DataFrame(rows, columns=["trip_id", "day_key", "lat", "lon", "species"])


def plot_trip_day_histogram(trips, bins='auto'):
    """
    Plots a histogram of trip photos over time.

    Parameters:
    - trips (list[Trip]): Output of synthesize_trips.
    - bins (str or int): Number of bins ('auto' for automatic binning or int for manual).
    """
    days = pd.to_datetime(pd.Series([trip.day_key for trip in trips for _ in trip.images], dtype=object))

    fig, ax = plt.subplots(figsize=(12, 6))
    if not days.empty:
        ax.hist(days, bins=bins, edgecolor='black', alpha=0.7)

    ax.xaxis.set_major_locator(plt.MaxNLocator(10))
    ax.set_xlabel('Trip day')
    ax.set_ylabel('Number of Photos')
    ax.set_title('Trip Photos Over Time')
    ax.tick_params(axis='x', labelrotation=45)

    fig.tight_layout()
    return fig


def plot_trip_positions(trips, zoom='auto', show_centroids=True):
    """
    Plots geotagged trip photos on a world map, one colour per trip.

    Parameters:
    - trips (list[Trip]): Output of synthesize_trips.
    - zoom (str or float): 'auto', 'us', 'world', or a numeric value that controls lat/lon buffers inversely.
    - show_centroids (bool): Mark each trip centroid with its id.
    """
    points = trips_to_points(trips)
    fig, ax = plt.subplots(figsize=(12, 8), subplot_kw={'projection': ccrs.PlateCarree()})

    # Add map features (coastlines, countries, etc.)
    ax.add_feature(cfeature.COASTLINE, linewidth=0.8)
    ax.add_feature(cfeature.BORDERS, linestyle=':', linewidth=0.5)
    ax.add_feature(cfeature.LAND, edgecolor='black', alpha=0.5)
    ax.add_feature(cfeature.OCEAN, alpha=0.5)

    cmap = plt.get_cmap('tab20')
    for position, (trip_id, group) in enumerate(points.groupby('trip_id', sort=False)):
        ax.scatter(
            group['lon'], group['lat'],
            color=cmap(position % cmap.N), s=40, alpha=0.8,
            edgecolor='k', transform=ccrs.PlateCarree(), label=trip_id
        )

    if show_centroids:
        for trip in trips:
            lat, lon = trip.centroid
            ax.plot(lon, lat, marker='x', color='black', markersize=6, transform=ccrs.PlateCarree())
            ax.text(lon, lat, f' {trip.id}', fontsize=8, transform=ccrs.PlateCarree())

    if points.empty:
        ax.set_global()
    elif zoom == 'auto' or isinstance(zoom, (int, float)):
        min_lat, max_lat = points['lat'].min(), points['lat'].max()
        min_lon, max_lon = points['lon'].min(), points['lon'].max()

        divisor = 10 if zoom == 'auto' else zoom
        # Keep a small frame around single-point trips
        lat_buffer = max((max_lat - min_lat) / divisor, 0.05)
        lon_buffer = max((max_lon - min_lon) / divisor, 0.05)

        ax.set_extent([min_lon - lon_buffer, max_lon + lon_buffer,
                       min_lat - lat_buffer, max_lat + lat_buffer],
                      crs=ccrs.PlateCarree())
    elif zoom == 'us':
        ax.set_extent([-130, -60, 24, 50], crs=ccrs.PlateCarree())  # Continental US
    elif zoom == 'world':
        ax.set_global()
    else:
        raise ValueError("Invalid zoom option. Choose from 'auto', 'us', or 'world', or provide a numeric value.")

    gl = ax.gridlines(draw_labels=True, linestyle='--', linewidth=0.5, alpha=0.7)
    gl.top_labels = False
    gl.right_labels = False

    ax.set_title('Detected Trips')
    if len(points):
        ax.legend(loc='lower left', fontsize=8)
    return fig
