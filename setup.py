from setuptools import setup

setup(
   name='gcforest-engine',
   version='0.2a',
   description='gcForest: multi-grained scanning and cascade of random forests',
   author='Matej Klemen',
   packages=['gcforest_engine'],
   python_requires='>=3.8',
   install_requires=['numpy', 'scikit-learn>=1.1', 'joblib'],
   extras_require={'test': ['pytest']}
)
